"""
Flash-Sale Admission Exceptions

Every rejection of a seckill order is a BusinessRejectError subclass. Each
carries a stable ``reason`` code (also used as a metric label) and a
user-visible default message.
"""

from typing import Any

from shopcache.core.config.constants import AdmissionOutcome
from shopcache.core.exceptions.base import ShopCacheError


class BusinessRejectError(ShopCacheError):
    """
    Base exception for admission rejections.

    Subclasses only override ``reason`` and ``default_message``:

        raise OutOfStockError(details={"voucher_id": 7})
    """

    reason: AdmissionOutcome
    default_message: str = "Request rejected"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ):
        super().__init__(message or self.default_message, details=details, request_id=request_id)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["reason"] = self.reason.value
        return payload


class VoucherNotFoundError(BusinessRejectError):
    reason = AdmissionOutcome.VOUCHER_NOT_FOUND
    default_message = "Voucher does not exist"


class SaleNotStartedError(BusinessRejectError):
    reason = AdmissionOutcome.NOT_STARTED
    default_message = "Flash sale has not started yet"


class SaleEndedError(BusinessRejectError):
    reason = AdmissionOutcome.ENDED
    default_message = "Flash sale has already ended"


class OutOfStockError(BusinessRejectError):
    reason = AdmissionOutcome.OUT_OF_STOCK
    default_message = "Insufficient stock"


class AlreadyPurchasedError(BusinessRejectError):
    reason = AdmissionOutcome.ALREADY_PURCHASED
    default_message = "User has already purchased this voucher"


class DuplicateOrderError(BusinessRejectError):
    """Another order for the same user is in flight (per-user lock held)."""

    reason = AdmissionOutcome.DUPLICATE_IN_FLIGHT
    default_message = "Duplicate orders are not allowed"
