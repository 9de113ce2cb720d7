"""
Unit Tests for the Login Service
"""

import re

import pytest

from shopcache.application.services.login_service import is_phone_invalid
from shopcache.core.context import get_current_user, get_current_user_id
from shopcache.core.exceptions import InvalidInputError, VerificationCodeError

PHONE = "13812345678"


@pytest.mark.unit
class TestPhoneValidation:

    @pytest.mark.parametrize("phone", ["13812345678", "15912345678", "18800001111"])
    def test_valid_numbers(self, phone):
        assert is_phone_invalid(phone) is False

    @pytest.mark.parametrize("phone", [None, "", "12345", "23812345678", "1381234567a"])
    def test_invalid_numbers(self, phone):
        assert is_phone_invalid(phone) is True


@pytest.mark.unit
class TestSendCode:

    @pytest.mark.asyncio
    async def test_code_stored_with_ttl(self, login_service, store):
        code = await login_service.send_code(PHONE)

        assert re.fullmatch(r"\d{6}", code)
        assert await store.get(f"login:code:{PHONE}") == code
        assert store.ttl(f"login:code:{PHONE}") == 120

    @pytest.mark.asyncio
    async def test_invalid_phone_rejected(self, login_service, store):
        with pytest.raises(InvalidInputError):
            await login_service.send_code("12345")
        assert store.keys() == []


@pytest.mark.unit
class TestLogin:

    @pytest.mark.asyncio
    async def test_login_opens_session(self, login_service, store):
        code = await login_service.send_code(PHONE)

        token = await login_service.login(PHONE, code)

        assert re.fullmatch(r"[0-9a-f]{32}", token)
        session = await store.hgetall(f"login:token:{token}")
        assert session["id"] == "1"
        assert session["nickName"] == "user_1"
        assert store.ttl(f"login:token:{token}") == 1800
        assert not store.exists(f"login:code:{PHONE}")

    @pytest.mark.asyncio
    async def test_wrong_code_rejected(self, login_service):
        code = await login_service.send_code(PHONE)
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(VerificationCodeError):
            await login_service.login(PHONE, wrong)

    @pytest.mark.asyncio
    async def test_expired_code_rejected(self, login_service, clock):
        code = await login_service.send_code(PHONE)
        clock.advance(120)

        with pytest.raises(VerificationCodeError):
            await login_service.login(PHONE, code)

    @pytest.mark.asyncio
    async def test_new_phone_registers_user(self, login_service, user_repository):
        phone = "15900001111"
        code = await login_service.send_code(phone)

        token = await login_service.login(phone, code)

        user = await user_repository.get_by_phone(phone)
        assert user is not None
        assert re.fullmatch(r"user_[a-z0-9]{10}", user.nick_name)
        assert (await login_service.authenticate(token)).id == user.id


@pytest.mark.unit
class TestSessions:

    @pytest.mark.asyncio
    async def test_authenticate_slides_ttl(self, login_service, store, clock):
        token = await login_service.login(PHONE, await login_service.send_code(PHONE))
        clock.advance(1000)

        user = await login_service.authenticate(token)

        assert user.id == 1
        assert store.ttl(f"login:token:{token}") == 1800

    @pytest.mark.asyncio
    async def test_idle_session_expires(self, login_service, clock):
        token = await login_service.login(PHONE, await login_service.send_code(PHONE))
        clock.advance(1800)

        assert await login_service.authenticate(token) is None

    @pytest.mark.asyncio
    async def test_missing_token(self, login_service):
        assert await login_service.authenticate(None) is None
        assert await login_service.authenticate("unknown") is None

    @pytest.mark.asyncio
    async def test_request_scope_binds_user(self, login_service):
        token = await login_service.login(PHONE, await login_service.send_code(PHONE))

        async with login_service.request_scope(token) as user:
            assert user.id == 1
            assert get_current_user_id() == 1

        assert get_current_user() is None

    @pytest.mark.asyncio
    async def test_request_scope_anonymous(self, login_service):
        async with login_service.request_scope(None) as user:
            assert user is None
            assert get_current_user() is None
