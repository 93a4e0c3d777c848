"""Data models for the bookings service."""

from .booking import Booking

__all__ = ["Booking"]
