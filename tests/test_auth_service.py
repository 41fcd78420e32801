from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

import pytest

from app.api.errors import ApiError
from app.auth.service import AuthService
from app.auth.tokens import TokenIssuer, TokenSigningError
from app.core.config import AuthConfig
from app.media.storage import MediaUpload, StoredMedia
from app.users.models import UserRecord
from app.users.repository import UserAlreadyExistsError


@dataclass
class _Repo:
    users: dict[str, UserRecord] = field(default_factory=dict)
    fail_refetch: bool = False

    def get_user_by_id(self, user_id: str) -> UserRecord | None:
        if self.fail_refetch:
            return None
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    def find_by_username_or_email(
        self, *, username: str | None = None, email: str | None = None
    ) -> UserRecord | None:
        for user in self.users.values():
            if (username and user.username == username.lower()) or (
                email and user.email == email.lower()
            ):
                return user.model_copy()
        return None

    def create_user(self, user: UserRecord) -> None:
        if self.find_by_username_or_email(username=user.username, email=user.email):
            raise UserAlreadyExistsError(user.username)
        self.users[user.user_id] = user

    def set_refresh_token(self, user_id: str, refresh_token: str | None) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        self.users[user_id] = user.model_copy(update={"refresh_token": refresh_token})
        return True


@dataclass
class _Media:
    uploaded: list[StoredMedia] = field(default_factory=list)
    deleted: list[StoredMedia] = field(default_factory=list)

    def upload(self, media: MediaUpload | None) -> StoredMedia | None:
        if media is None or not media.filename:
            return None
        if not media.stream.read():
            return None
        stored = StoredMedia(
            media_id=f"m{len(self.uploaded)}",
            url=f"/media/{media.filename}",
            path=Path("/nonexistent") / media.filename,
        )
        self.uploaded.append(stored)
        return stored

    def delete(self, stored: StoredMedia) -> None:
        self.deleted.append(stored)


def _config() -> AuthConfig:
    return AuthConfig(
        access_token_secret="access-test-secret",
        access_token_ttl_seconds=300,
        refresh_token_secret="refresh-test-secret",
        refresh_token_ttl_seconds=1200,
        issuer="vidstream-test",
    )


def _build_service(repo: _Repo | None = None, media: _Media | None = None) -> AuthService:
    return AuthService(
        repo=repo or _Repo(),
        tokens=TokenIssuer(_config()),
        media=media or _Media(),
    )


def _avatar(name: str = "avatar.png", data: bytes = b"png") -> MediaUpload:
    return MediaUpload(filename=name, stream=BytesIO(data))


def _register_alice(service: AuthService, **overrides):
    params = {
        "full_name": "alice",
        "email": "alice@x.com",
        "password": "pw123",
        "username": "alice",
        "avatar": _avatar(),
    }
    params.update(overrides)
    return service.register(**params)


def test_register_returns_sanitized_user() -> None:
    service = _build_service()

    user = _register_alice(service)
    body = user.model_dump(by_alias=True)

    assert body["username"] == "alice"
    assert body["avatar"] == "/media/avatar.png"
    assert "passwordHash" not in body
    assert "password_hash" not in body
    assert "refreshToken" not in body
    assert "refresh_token" not in body


def test_register_normalizes_username_and_email() -> None:
    repo = _Repo()
    service = _build_service(repo)

    user = _register_alice(service, username="  Alice ", email="ALICE@X.com")

    assert user.username == "alice"
    assert user.email == "alice@x.com"
    stored = repo.users[user.id]
    assert stored.password_hash != "pw123"


@pytest.mark.parametrize("blank_field", ["full_name", "email", "password", "username"])
def test_register_rejects_blank_fields(blank_field: str) -> None:
    service = _build_service()

    with pytest.raises(ApiError) as exc:
        _register_alice(service, **{blank_field: "   "})

    assert exc.value.status_code == 400


def test_register_rejects_duplicate_username_or_email() -> None:
    service = _build_service()
    _register_alice(service)

    with pytest.raises(ApiError) as same_username:
        _register_alice(service, email="other@x.com", avatar=_avatar())
    with pytest.raises(ApiError) as same_email:
        _register_alice(service, username="alice2", avatar=_avatar())

    assert same_username.value.status_code == 409
    assert same_email.value.status_code == 409


def test_register_requires_avatar() -> None:
    media = _Media()
    service = _build_service(media=media)

    with pytest.raises(ApiError) as missing:
        _register_alice(service, avatar=None)
    with pytest.raises(ApiError) as empty:
        _register_alice(service, avatar=_avatar(data=b""))

    assert missing.value.status_code == 400
    assert empty.value.status_code == 400
    assert media.uploaded == []


def test_register_rolls_back_media_when_create_races() -> None:
    repo = _Repo()
    media = _Media()
    service = _build_service(repo, media)

    def _racing_create(user: UserRecord) -> None:
        raise UserAlreadyExistsError(user.username)

    repo.create_user = _racing_create  # type: ignore[method-assign]

    with pytest.raises(ApiError) as exc:
        _register_alice(
            service, cover_image=MediaUpload(filename="cover.jpg", stream=BytesIO(b"x"))
        )

    assert exc.value.status_code == 409
    assert [item.url for item in media.deleted] == ["/media/avatar.png", "/media/cover.jpg"]


def test_register_signals_internal_error_when_refetch_misses() -> None:
    repo = _Repo(fail_refetch=True)
    service = _build_service(repo)

    with pytest.raises(ApiError) as exc:
        _register_alice(service)

    assert exc.value.status_code == 500


def test_login_by_email_issues_tokens_and_persists_refresh_token() -> None:
    repo = _Repo()
    service = _build_service(repo)
    user = _register_alice(service)

    session = service.login(username=None, email="alice@x.com", password="pw123")

    assert session.access_token
    assert session.refresh_token
    assert session.user.username == "alice"
    assert repo.users[user.id].refresh_token == session.refresh_token


def test_login_requires_username_or_email() -> None:
    service = _build_service()

    with pytest.raises(ApiError) as exc:
        service.login(username=" ", email=None, password="pw123")

    assert exc.value.status_code == 400


def test_login_unknown_user_and_wrong_password_both_map_to_404() -> None:
    service = _build_service()
    _register_alice(service)

    with pytest.raises(ApiError) as unknown:
        service.login(username="bob", email=None, password="pw123")
    with pytest.raises(ApiError) as wrong_password:
        service.login(username="alice", email=None, password="nope")

    assert unknown.value.status_code == 404
    assert wrong_password.value.status_code == 404
    assert "AUTH_INVALID_CREDENTIALS" in str(wrong_password.value.detail)


def test_refresh_token_succeeds_exactly_once() -> None:
    service = _build_service()
    _register_alice(service)
    session = service.login(username="alice", email=None, password="pw123")

    rotated = service.refresh(session.refresh_token)
    with pytest.raises(ApiError) as exc:
        service.refresh(session.refresh_token)

    assert rotated.refresh_token != session.refresh_token
    assert exc.value.status_code == 401


def test_refresh_supersedes_previous_generation() -> None:
    service = _build_service()
    _register_alice(service)
    session = service.login(username="alice", email=None, password="pw123")

    first = service.refresh(session.refresh_token)
    second = service.refresh(first.refresh_token)

    with pytest.raises(ApiError) as exc:
        service.refresh(first.refresh_token)
    assert exc.value.status_code == 401
    assert service.refresh(second.refresh_token).refresh_token


def test_new_login_invalidates_previous_session() -> None:
    service = _build_service()
    _register_alice(service)
    first = service.login(username="alice", email=None, password="pw123")
    second = service.login(username=None, email="alice@x.com", password="pw123")

    with pytest.raises(ApiError) as exc:
        service.refresh(first.refresh_token)

    assert exc.value.status_code == 401
    assert service.refresh(second.refresh_token).access_token


def test_logout_invalidates_refresh_token() -> None:
    repo = _Repo()
    service = _build_service(repo)
    user = _register_alice(service)
    session = service.login(username="alice", email=None, password="pw123")

    service.logout(user.id)

    assert repo.users[user.id].refresh_token is None
    with pytest.raises(ApiError) as exc:
        service.refresh(session.refresh_token)
    assert exc.value.status_code == 401


def test_refresh_rejects_missing_and_malformed_tokens() -> None:
    service = _build_service()

    with pytest.raises(ApiError) as missing:
        service.refresh(None)
    with pytest.raises(ApiError) as malformed:
        service.refresh("not-a-jwt")

    assert missing.value.status_code == 401
    assert "AUTH_MISSING_TOKEN" in str(missing.value.detail)
    assert malformed.value.status_code == 401


def test_refresh_rejects_access_token() -> None:
    service = _build_service()
    _register_alice(service)
    session = service.login(username="alice", email=None, password="pw123")

    with pytest.raises(ApiError) as exc:
        service.refresh(session.access_token)

    assert exc.value.status_code == 401


def test_refresh_rejects_token_for_deleted_user() -> None:
    repo = _Repo()
    service = _build_service(repo)
    user = _register_alice(service)
    session = service.login(username="alice", email=None, password="pw123")
    del repo.users[user.id]

    with pytest.raises(ApiError) as exc:
        service.refresh(session.refresh_token)

    assert exc.value.status_code == 401
    assert "Invalid refresh token" in str(exc.value.detail)


def test_authenticate_access_token_resolves_user() -> None:
    service = _build_service()
    user = _register_alice(service)
    session = service.login(username="alice", email=None, password="pw123")

    resolved = service.authenticate_access_token(session.access_token)

    assert resolved.id == user.id
    with pytest.raises(ApiError):
        service.authenticate_access_token(session.refresh_token)


def test_signing_failure_maps_to_internal_error() -> None:
    class _BrokenIssuer(TokenIssuer):
        def issue_pair(self, user: UserRecord):
            raise TokenSigningError("boom")

    service = AuthService(repo=_Repo(), tokens=_BrokenIssuer(_config()), media=_Media())
    _register_alice(service)

    with pytest.raises(ApiError) as exc:
        service.login(username="alice", email=None, password="pw123")

    assert exc.value.status_code == 500


def test_register_login_refresh_scenario() -> None:
    service = _build_service()

    registered = _register_alice(service)
    session = service.login(username=None, email="alice@x.com", password="pw123")
    rotated = service.refresh(session.refresh_token)

    assert registered.username == "alice"
    assert session.access_token and session.refresh_token
    assert rotated.refresh_token != session.refresh_token
    with pytest.raises(ApiError) as exc:
        service.refresh(session.refresh_token)
    assert exc.value.status_code == 401
