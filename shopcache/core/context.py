"""
Ambient User Context

The authenticated user of the current request lives in a context variable.
asyncio copies the context into every task it creates and the rebuild pool
runs each job in a copy of its submitter's context, so work spawned on
behalf of a request sees the same user while concurrent requests never see
each other's.

Usage:
    with user_context(user):
        order_id = await voucher_order_service.seckill_voucher(voucher_id)
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from shopcache.core.logging.logger import bind_user_id
from shopcache.models.user import UserDTO

_current_user: ContextVar[UserDTO | None] = ContextVar("current_user", default=None)


def get_current_user() -> UserDTO | None:
    return _current_user.get()


def get_current_user_id() -> int | None:
    user = _current_user.get()
    return user.id if user else None


def set_current_user(user: UserDTO | None) -> None:
    _current_user.set(user)
    bind_user_id(user.id if user else None)


def clear_current_user() -> None:
    set_current_user(None)


@contextmanager
def user_context(user: UserDTO | None) -> Iterator[UserDTO | None]:
    """Bind ``user`` for the duration of the block, restoring the previous value after."""
    token = _current_user.set(user)
    bind_user_id(user.id if user else None)
    try:
        yield user
    finally:
        _current_user.reset(token)
        previous = _current_user.get()
        bind_user_id(previous.id if previous else None)
