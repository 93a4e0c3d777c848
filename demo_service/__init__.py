"""Bookings demo service: greeting page, top-10 bookings query and health probe."""

__version__ = "0.1.0"
