"""
Login Service

Phone + one-time-code login with sessions held in the key-value store.

Keys:
    login:code:<phone>   six-digit code, LOGIN_CODE_TTL
    login:token:<token>  hash of the UserDTO, LOGIN_USER_TTL (sliding)

Every authenticated request refreshes the session TTL, so a session only
expires after LOGIN_USER_TTL of inactivity. ``request_scope`` wraps a
request: it resolves the token and binds the user to the ambient context
for the duration of the block.
"""

import re
import secrets
import string
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from shopcache.core.config.constants import (
    LOGIN_CODE_KEY,
    LOGIN_USER_KEY,
    PHONE_REGEX,
    USER_NICK_NAME_PREFIX,
    VERIFICATION_CODE_LENGTH,
)
from shopcache.core.config.settings import Settings, get_settings
from shopcache.core.context import user_context
from shopcache.core.exceptions import InvalidInputError, VerificationCodeError
from shopcache.core.interfaces.kv_store import KeyValueStore
from shopcache.core.interfaces.persistence import UserRepository
from shopcache.core.logging.logger import get_logger, log_stage
from shopcache.models.user import User, UserDTO

logger = get_logger(__name__)

_PHONE = re.compile(PHONE_REGEX)
_NICK_NAME_ALPHABET = string.ascii_lowercase + string.digits


def is_phone_invalid(phone: str | None) -> bool:
    return not phone or _PHONE.match(phone) is None


class LoginService:
    def __init__(
        self,
        store: KeyValueStore,
        user_repository: UserRepository,
        settings: Settings | None = None,
    ):
        self._store = store
        self._users = user_repository
        self._settings = settings or get_settings()

    async def send_code(self, phone: str) -> str:
        """
        Issue a verification code for ``phone``.

        Delivery (SMS) is external; the code is returned to the caller.

        Raises:
            InvalidInputError: malformed phone number
        """
        if is_phone_invalid(phone):
            raise InvalidInputError("Invalid phone number format", details={"phone": phone})

        code = "".join(secrets.choice(string.digits) for _ in range(VERIFICATION_CODE_LENGTH))
        await self._store.set(LOGIN_CODE_KEY + phone, code, self._settings.login.code_ttl_seconds)

        log_stage(logger, "LOGIN.1", "Verification code issued", phone=phone)
        return code

    async def login(self, phone: str, code: str) -> str:
        """
        Verify the code, find or register the user and open a session.

        Returns:
            The session token

        Raises:
            InvalidInputError: malformed phone number
            VerificationCodeError: code missing, expired or wrong
        """
        if is_phone_invalid(phone):
            raise InvalidInputError("Invalid phone number format", details={"phone": phone})

        cached_code = await self._store.get(LOGIN_CODE_KEY + phone)
        if cached_code is None or cached_code != code:
            raise VerificationCodeError("Verification code is incorrect")

        user = await self._users.get_by_phone(phone)
        if user is None:
            user = await self.create_user_with_phone(phone)

        token = uuid.uuid4().hex
        token_key = LOGIN_USER_KEY + token
        await self._store.hset_mapping(token_key, UserDTO.from_user(user).to_hash())
        await self._store.expire(token_key, self._settings.login.user_ttl_seconds)
        await self._store.delete(LOGIN_CODE_KEY + phone)

        log_stage(logger, "LOGIN.2", "User logged in", user_id=user.id)
        return token

    async def create_user_with_phone(self, phone: str) -> User:
        suffix = "".join(secrets.choice(_NICK_NAME_ALPHABET) for _ in range(10))
        user = await self._users.create(User(phone=phone, nick_name=USER_NICK_NAME_PREFIX + suffix))
        log_stage(logger, "LOGIN.3", "User registered", user_id=user.id)
        return user

    async def authenticate(self, token: str | None) -> UserDTO | None:
        """
        Resolve a session token and slide its TTL.

        Returns:
            The session user, or None for a missing/expired token
        """
        if not token:
            return None

        token_key = LOGIN_USER_KEY + token
        mapping = await self._store.hgetall(token_key)
        if not mapping:
            return None

        user = UserDTO.from_hash(mapping)
        await self._store.expire(token_key, self._settings.login.user_ttl_seconds)
        return user

    @asynccontextmanager
    async def request_scope(self, token: str | None) -> AsyncIterator[UserDTO | None]:
        """
        Bind the token's user (or None) to the current context for one request.

        Usage:
            async with login_service.request_scope(token) as user:
                await voucher_order_service.seckill_voucher(voucher_id)
        """
        user = await self.authenticate(token)
        with user_context(user):
            yield user
