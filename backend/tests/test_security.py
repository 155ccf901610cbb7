"""
Identity provider: sign-in, the admin allow-list and token handling
"""

import asyncio
import time
from datetime import timedelta

import pytest

from tour_admin.core.security import (
    AuthenticationError, AuthorizationError, IdentityProvider,
    get_password_hash, verify_password, wait_for_admin,
)
from tour_admin.db.models import UserRole

from conftest import make_settings


@pytest.fixture
def identity(store):
    return IdentityProvider(store, make_settings())


def test_password_hashing():
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_with_garbage_hash():
    assert verify_password("secret123", "not-a-hash") is False


@pytest.mark.asyncio
async def test_admin_can_sign_in(identity):
    account = await identity.create_account("Admin@Example.com", "secret123", display_name="Ada")
    await identity.grant_admin(account)

    token = await identity.sign_in("admin@example.com", "secret123")
    admin = await identity.resolve_admin(token)

    assert admin.id == account.id
    assert admin.role == UserRole.ADMIN
    assert admin.name == "Ada"


@pytest.mark.asyncio
async def test_wrong_password_is_authentication_failure(identity):
    account = await identity.create_account("admin@example.com", "secret123")
    await identity.grant_admin(account)

    with pytest.raises(AuthenticationError):
        await identity.sign_in("admin@example.com", "nope-nope")
    with pytest.raises(AuthenticationError):
        await identity.sign_in("nobody@example.com", "secret123")


@pytest.mark.asyncio
async def test_non_admin_is_authorization_failure(identity):
    """Valid credentials without an allow-list entry never get a token"""
    await identity.create_account("user@example.com", "secret123")

    with pytest.raises(AuthorizationError):
        await identity.sign_in("user@example.com", "secret123")


@pytest.mark.asyncio
async def test_removed_admin_is_signed_out(identity, store):
    account = await identity.create_account("admin@example.com", "secret123")
    await identity.grant_admin(account)
    token = await identity.sign_in("admin@example.com", "secret123")

    await store.delete("admins", account.id)

    with pytest.raises(AuthorizationError):
        await identity.resolve_admin(token)
    assert identity.is_signed_out(token)

    # restoring the allow-list entry does not revive the revoked token
    await identity.grant_admin(account)
    with pytest.raises(AuthenticationError):
        await identity.resolve_admin(token)


@pytest.mark.asyncio
async def test_sign_out_revokes_token(identity):
    account = await identity.create_account("admin@example.com", "secret123")
    await identity.grant_admin(account)
    token = await identity.sign_in("admin@example.com", "secret123")

    identity.sign_out(token)

    with pytest.raises(AuthenticationError):
        await identity.resolve_admin(token)


@pytest.mark.asyncio
async def test_signed_out_tokens_are_forgotten_once_expired(store):
    now = [time.time()]
    identity = IdentityProvider(store, make_settings(), clock=lambda: now[0])
    account = await identity.create_account("admin@example.com", "secret123")
    await identity.grant_admin(account)
    token = await identity.sign_in("admin@example.com", "secret123")

    identity.sign_out(token)
    identity.sign_out("not.a.token")
    assert identity.is_signed_out(token)
    assert identity.is_signed_out("not.a.token")

    now[0] += 2 * 60 * 60

    assert not identity.is_signed_out(token)
    assert not identity.is_signed_out("not.a.token")
    assert identity._blacklist == {}


@pytest.mark.asyncio
async def test_expired_and_forged_tokens(identity):
    account = await identity.create_account("admin@example.com", "secret123")
    await identity.grant_admin(account)

    expired = identity.create_access_token(account, expires_delta=timedelta(minutes=-1))
    with pytest.raises(AuthenticationError):
        await identity.resolve_admin(expired)

    with pytest.raises(AuthenticationError):
        await identity.resolve_admin("not.a.token")


@pytest.mark.asyncio
async def test_duplicate_and_short_passwords_rejected(identity):
    await identity.create_account("admin@example.com", "secret123")

    with pytest.raises(ValueError):
        await identity.create_account("admin@example.com", "another123")
    with pytest.raises(ValueError):
        await identity.create_account("other@example.com", "123")


@pytest.mark.asyncio
async def test_wait_for_admin_times_out():
    class SlowIdentity:
        async def resolve_admin(self, token):
            await asyncio.sleep(10)

    with pytest.raises(AuthenticationError):
        await wait_for_admin(SlowIdentity(), "token", timeout=0.05)
