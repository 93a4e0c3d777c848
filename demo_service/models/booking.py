"""Pydantic model for a row of the external ``bookings`` table."""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator


class Booking(BaseModel):
    """A single booking as returned by ``GET /query``.

    ``total`` stays a Decimal end to end and is emitted as a string so no
    currency value ever passes through a float.
    """

    model_config = ConfigDict(frozen=True)

    id: str  # book_ref
    date: datetime  # book_date, always UTC
    total: Decimal  # total_amount

    @field_validator("date")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        # Drivers without timezone support hand back naive UTC values.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_serializer("date")
    def _rfc3339(self, value: datetime) -> str:
        return value.isoformat().replace("+00:00", "Z")

    @field_serializer("total")
    def _decimal_string(self, value: Decimal) -> str:
        return str(value)
