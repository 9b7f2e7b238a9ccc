"""Service-level tests for the session lifecycle: login, refresh, logout, password change."""

from __future__ import annotations

import asyncio
import io

import pytest
from fastapi import UploadFile
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import Headers

from vidtube.auth import service
from vidtube.auth.jwt import create_refresh_token, verify_token
from vidtube.auth.service import (
    IssuedSession,
    authenticate,
    change_password,
    login,
    logout,
    refresh,
    register,
    register_account,
)
from vidtube.config import get_settings
from vidtube.database import get_session_factory
from vidtube.db.models import User
from vidtube.exceptions import (
    ConflictRetryError,
    DuplicateIdentityError,
    InvalidArgumentError,
    InvalidCredentialError,
    NotFoundError,
    TokenReuseDetectedError,
    UnauthenticatedError,
    WeakPasswordError,
)
from vidtube.media.service import MediaService

PASSWORD = "SecurePass123"


def _upload(data: bytes, filename: str, content_type: str) -> UploadFile:
    return UploadFile(
        io.BytesIO(data), size=len(data), filename=filename, headers=Headers({"content-type": content_type})
    )


async def _stored_refresh_token(user_id: str) -> str | None:
    async with get_session_factory()() as db:
        result = await db.execute(select(User.refresh_token).where(User.id == user_id))
        return result.scalar_one()


@pytest.fixture
async def alice(db_session: AsyncSession) -> User:
    return await register(db_session, "alice", "alice@example.com", "Alice Example", PASSWORD)


class TestRegister:
    async def test_register_hashes_password(self, db_session: AsyncSession):
        user = await register(db_session, "Bob_1", "Bob@Example.com", "  Bob  ", PASSWORD)
        assert user.username == "bob_1"
        assert user.email == "bob@example.com"
        assert user.full_name == "Bob"
        assert user.password_hash != PASSWORD
        assert user.password_hash.startswith("$argon2id$")
        assert user.refresh_token is None
        assert user.login_count == 0

    async def test_duplicate_username_rejected(self, db_session: AsyncSession, alice: User):
        with pytest.raises(DuplicateIdentityError):
            await register(db_session, "alice", "other@example.com", "Other", PASSWORD)

    async def test_duplicate_email_rejected(self, db_session: AsyncSession, alice: User):
        with pytest.raises(DuplicateIdentityError):
            await register(db_session, "other", "alice@example.com", "Other", PASSWORD)

    @pytest.mark.parametrize("username", ["", "ab", "has space", "x" * 21, "dash-name"])
    async def test_bad_username_rejected(self, db_session: AsyncSession, username: str):
        with pytest.raises(InvalidArgumentError):
            await register(db_session, username, "x@example.com", "X", PASSWORD)

    async def test_blank_full_name_rejected(self, db_session: AsyncSession):
        with pytest.raises(InvalidArgumentError):
            await register(db_session, "carol", "carol@example.com", "   ", PASSWORD)

    async def test_weak_password_rejected(self, db_session: AsyncSession):
        with pytest.raises(WeakPasswordError):
            await register(db_session, "carol", "carol@example.com", "Carol", "short")

    @pytest.mark.parametrize("email", ["not-an-email", "two@@example.com", "", "spaces in@example.com"])
    async def test_malformed_email_rejected(self, db_session: AsyncSession, email: str):
        with pytest.raises(InvalidArgumentError, match="Invalid email format"):
            await register(db_session, "dave", email, "Dave", PASSWORD)

        result = await db_session.execute(select(User).where(User.username == "dave"))
        assert result.scalar_one_or_none() is None


class TestRegisterAccount:
    async def test_stores_images_on_account(self, db_session: AsyncSession, media_service: MediaService):
        user = await register_account(
            db_session, media_service, "carol", "carol@example.com", "Carol", PASSWORD,
            avatar=_upload(b"avatar-bytes", "me.png", "image/png"),
            cover=_upload(b"cover-bytes", "wide.webp", "image/webp"),
        )
        assert user.avatar_public_id.endswith(".png")
        assert user.cover_public_id.endswith(".webp")
        assert user.avatar_url.endswith(user.avatar_public_id)

    async def test_duplicate_discards_stored_images(
        self, db_session: AsyncSession, media_service: MediaService, alice: User, monkeypatch: pytest.MonkeyPatch
    ):
        discarded: list[str | None] = []
        real_discard = media_service.discard

        async def record_discard(public_id):
            discarded.append(public_id)
            return await real_discard(public_id)

        monkeypatch.setattr(media_service, "discard", record_discard)
        with pytest.raises(DuplicateIdentityError):
            await register_account(
                db_session, media_service, "alice", "fresh@example.com", "Alice Two", PASSWORD,
                avatar=_upload(b"avatar-bytes", "me.png", "image/png"),
                cover=_upload(b"cover-bytes", "wide.png", "image/png"),
            )

        assert len(discarded) == 2
        root = media_service.provider.root
        assert not any((root / public_id).exists() for public_id in discarded)

    async def test_invalid_fields_never_touch_media(self, db_session: AsyncSession, media_service: MediaService):
        avatar = _upload(b"avatar-bytes", "me.png", "image/png")
        with pytest.raises(InvalidArgumentError):
            await register_account(
                db_session, media_service, "carol", "not-an-email", "Carol", PASSWORD, avatar=avatar,
            )
        assert not media_service.provider.root.exists() or not any(media_service.provider.root.iterdir())

    async def test_bad_cover_stores_nothing(self, db_session: AsyncSession, media_service: MediaService):
        with pytest.raises(InvalidArgumentError, match="Cover image"):
            await register_account(
                db_session, media_service, "carol", "carol@example.com", "Carol", PASSWORD,
                avatar=_upload(b"avatar-bytes", "me.png", "image/png"),
                cover=_upload(b"%PDF", "doc.pdf", "application/pdf"),
            )
        assert not media_service.provider.root.exists() or not any(media_service.provider.root.iterdir())


class TestLogin:
    async def test_login_by_username(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "alice", PASSWORD)
        assert isinstance(issued, IssuedSession)
        assert issued.user.id == alice.id
        assert await _stored_refresh_token(alice.id) == issued.refresh_token
        assert verify_token(issued.access_token, expected_type="access")["sub"] == alice.id

    async def test_login_by_email_case_insensitive(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "ALICE@example.com", PASSWORD)
        assert issued.user.id == alice.id

    async def test_login_updates_counters(self, db_session: AsyncSession, alice: User):
        await login(db_session, "alice", PASSWORD)
        issued = await login(db_session, "alice", PASSWORD)
        assert issued.user.login_count == 2
        assert issued.user.last_login is not None

    async def test_second_login_replaces_refresh_token(self, db_session: AsyncSession, alice: User):
        first = await login(db_session, "alice", PASSWORD)
        second = await login(db_session, "alice", PASSWORD)
        assert await _stored_refresh_token(alice.id) == second.refresh_token
        with pytest.raises(TokenReuseDetectedError):
            await refresh(db_session, first.refresh_token)

    async def test_wrong_password(self, db_session: AsyncSession, alice: User):
        with pytest.raises(InvalidCredentialError):
            await login(db_session, "alice", "WrongPass123")
        assert await _stored_refresh_token(alice.id) is None

    async def test_unknown_identity_concealed(self, db_session: AsyncSession):
        with pytest.raises(InvalidCredentialError):
            await login(db_session, "nobody", PASSWORD)

    async def test_unknown_identity_not_found_when_disclosed(
        self, db_session: AsyncSession, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setattr(get_settings(), "login_conceal_unknown_identity", False)
        with pytest.raises(NotFoundError):
            await login(db_session, "nobody", PASSWORD)

    async def test_blank_identifier(self, db_session: AsyncSession):
        with pytest.raises(InvalidArgumentError):
            await login(db_session, "   ", PASSWORD)


class TestRefresh:
    async def test_rotation_scenario(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "alice", PASSWORD)
        r1 = issued.refresh_token

        rotated = await refresh(db_session, r1)
        r2 = rotated.refresh_token
        assert r2 != r1
        assert await _stored_refresh_token(alice.id) == r2

        # Replaying the rotated-away token fails and leaves the live one alone
        with pytest.raises(UnauthenticatedError):
            await refresh(db_session, r1)
        assert await _stored_refresh_token(alice.id) == r2

        await logout(db_session, alice.id)
        with pytest.raises(UnauthenticatedError):
            await refresh(db_session, r2)
        assert await _stored_refresh_token(alice.id) is None

    async def test_garbage_token(self, db_session: AsyncSession):
        with pytest.raises(UnauthenticatedError):
            await refresh(db_session, "not-a-jwt")

    async def test_empty_token(self, db_session: AsyncSession):
        with pytest.raises(UnauthenticatedError):
            await refresh(db_session, "")

    async def test_access_token_is_not_a_refresh_token(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "alice", PASSWORD)
        with pytest.raises(UnauthenticatedError):
            await refresh(db_session, issued.access_token)

    async def test_vanished_subject(self, db_session: AsyncSession):
        token = create_refresh_token("00000000-0000-4000-8000-000000000000")
        with pytest.raises(NotFoundError):
            await refresh(db_session, token)

    async def test_lost_swap_raises_conflict(
        self, db_session: AsyncSession, alice: User, monkeypatch: pytest.MonkeyPatch
    ):
        """Another rotation lands between the read and the conditional update."""
        alice_id = alice.id
        issued = await login(db_session, "alice", PASSWORD)
        real_lookup = service.get_user_by_id

        async def lookup_then_rotate_elsewhere(db, user_id):
            user = await real_lookup(db, user_id)
            async with get_session_factory()() as other:
                await other.execute(update(User).where(User.id == user_id).values(refresh_token="rotated-elsewhere"))
                await other.commit()
            return user

        monkeypatch.setattr(service, "get_user_by_id", lookup_then_rotate_elsewhere)
        with pytest.raises(ConflictRetryError):
            await refresh(db_session, issued.refresh_token)
        assert await _stored_refresh_token(alice_id) == "rotated-elsewhere"

    async def test_concurrent_refresh_has_one_winner(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "alice", PASSWORD)

        async def attempt() -> IssuedSession:
            async with get_session_factory()() as db:
                return await refresh(db, issued.refresh_token)

        outcomes = await asyncio.gather(*(attempt() for _ in range(4)), return_exceptions=True)
        winners = [o for o in outcomes if isinstance(o, IssuedSession)]
        losers = [o for o in outcomes if not isinstance(o, IssuedSession)]

        assert len(winners) == 1
        assert losers
        assert all(isinstance(o, (TokenReuseDetectedError, ConflictRetryError)) for o in losers), losers
        assert await _stored_refresh_token(alice.id) == winners[0].refresh_token


class TestLogout:
    async def test_logout_keeps_access_token_valid(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "alice", PASSWORD)
        await logout(db_session, alice.id)
        # Access tokens are stateless and outlive logout until expiry
        user = await authenticate(db_session, issued.access_token)
        assert user.id == alice.id

    async def test_logout_is_idempotent(self, db_session: AsyncSession, alice: User):
        await logout(db_session, alice.id)
        await logout(db_session, alice.id)
        assert await _stored_refresh_token(alice.id) is None


class TestChangePassword:
    async def test_change_password(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "alice", PASSWORD)
        await change_password(db_session, alice.id, PASSWORD, "NewSecurePass456")

        with pytest.raises(InvalidCredentialError):
            await login(db_session, "alice", PASSWORD)
        # Existing session survives the change
        assert await _stored_refresh_token(alice.id) == issued.refresh_token
        await login(db_session, "alice", "NewSecurePass456")

    async def test_wrong_old_password(self, db_session: AsyncSession, alice: User):
        with pytest.raises(InvalidCredentialError, match="Old password"):
            await change_password(db_session, alice.id, "WrongPass123", "NewSecurePass456")

    async def test_weak_new_password(self, db_session: AsyncSession, alice: User):
        with pytest.raises(WeakPasswordError):
            await change_password(db_session, alice.id, PASSWORD, "weak")
        await login(db_session, "alice", PASSWORD)

    async def test_unknown_user(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await change_password(db_session, "00000000-0000-4000-8000-000000000000", PASSWORD, "NewSecurePass456")


class TestAuthenticate:
    async def test_valid_access_token(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "alice", PASSWORD)
        assert (await authenticate(db_session, issued.access_token)).id == alice.id

    async def test_refresh_token_rejected(self, db_session: AsyncSession, alice: User):
        issued = await login(db_session, "alice", PASSWORD)
        with pytest.raises(UnauthenticatedError):
            await authenticate(db_session, issued.refresh_token)

    async def test_missing_token(self, db_session: AsyncSession):
        with pytest.raises(UnauthenticatedError):
            await authenticate(db_session, "")
