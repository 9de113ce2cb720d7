"""
Flash-sale voucher and order models.
"""

from datetime import datetime, timezone

from pydantic import Field, field_validator

from shopcache.models.shop import CamelModel


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SeckillVoucher(CamelModel):
    """
    Stock and sale window of a flash-sale voucher.

    Naive datetimes are interpreted as UTC so the admission window is always
    compared against an aware clock.
    """

    voucher_id: int
    stock: int = Field(..., ge=0)
    begin_time: datetime
    end_time: datetime
    create_time: datetime | None = None
    update_time: datetime | None = None

    @field_validator("begin_time", "end_time", "create_time", "update_time")
    @classmethod
    def normalize_timezone(cls, v):
        return _as_utc(v)


class VoucherOrder(CamelModel):
    """An admitted order, keyed by the generated 64-bit ID."""

    id: int
    user_id: int
    voucher_id: int
    pay_type: int = 1
    status: int = 1
    create_time: datetime | None = None

    @field_validator("create_time")
    @classmethod
    def normalize_timezone(cls, v):
        return _as_utc(v)
