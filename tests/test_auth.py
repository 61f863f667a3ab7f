"""
Authentication tests.

Verifies:
- Local accounts: sign-up, sign-in, wrong password, duplicate email
- Hosted provider error codes map to friendly messages
- Token refresh only when close to expiry
- Saved sessions round-trip and expire; nothing is kept unless remembered
"""

import json
import time
from unittest.mock import MagicMock

import pytest
import requests

from core import auth
from core.auth import AuthError, AuthUser, HostedAuthProvider, LocalAuthProvider, hash_password, verify_password


def _response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body or {}
    return resp


# =============================================================================
# PASSWORD HASHING
# =============================================================================


class TestPasswordHash:

    def test_verify(self):
        stored = hash_password("secret1")
        assert verify_password("secret1", stored)
        assert not verify_password("secret2", stored)

    def test_salted(self):
        assert hash_password("secret1") != hash_password("secret1")

    def test_malformed_hash(self):
        assert not verify_password("secret1", "")
        assert not verify_password("secret1", "nodollar")


# =============================================================================
# LOCAL PROVIDER
# =============================================================================


class TestLocalAuthProvider:

    def test_sign_up_then_sign_in(self, conn):
        provider = LocalAuthProvider(conn)
        created = provider.sign_up("Owner@Shop.com", "secret1")
        user = provider.sign_in("owner@shop.com", "secret1")
        assert user.uid == created.uid
        assert user.email == "owner@shop.com"

    def test_wrong_password(self, conn):
        provider = LocalAuthProvider(conn)
        provider.sign_up("owner@shop.com", "secret1")
        with pytest.raises(AuthError, match="Incorrect password. Please try again.") as exc:
            provider.sign_in("owner@shop.com", "nope")
        assert exc.value.code == "INVALID_PASSWORD"

    def test_unknown_email(self, conn):
        with pytest.raises(AuthError, match="Invalid email or password."):
            LocalAuthProvider(conn).sign_in("ghost@shop.com", "secret1")

    def test_duplicate_email(self, conn):
        provider = LocalAuthProvider(conn)
        provider.sign_up("owner@shop.com", "secret1")
        with pytest.raises(AuthError) as exc:
            provider.sign_up("OWNER@shop.com", "secret2")
        assert exc.value.code == "EMAIL_EXISTS"

    def test_reauthenticate(self, conn):
        provider = LocalAuthProvider(conn)
        user = provider.sign_up("owner@shop.com", "secret1")
        assert provider.reauthenticate(user, "secret1").uid == user.uid
        with pytest.raises(AuthError):
            provider.reauthenticate(user, "wrong")

    def test_password_reset_unavailable(self, conn):
        with pytest.raises(AuthError, match="not available"):
            LocalAuthProvider(conn).send_password_reset("owner@shop.com")


# =============================================================================
# HOSTED PROVIDER
# =============================================================================


class TestHostedAuthProvider:

    def test_sign_in_parses_tokens(self):
        session = MagicMock()
        session.post.return_value = _response(body={
            "localId": "uid-1", "email": "a@b.co", "idToken": "id", "refreshToken": "rt", "expiresIn": "3600",
        })
        user = HostedAuthProvider("key", session=session).sign_in("a@b.co", "secret1")

        assert (user.uid, user.id_token, user.refresh_token) == ("uid-1", "id", "rt")
        assert user.expires_at > time.time() + 3000
        assert session.post.call_args.args[0].endswith("accounts:signInWithPassword")
        assert session.post.call_args.kwargs["json"]["returnSecureToken"] is True

    @pytest.mark.parametrize(
        "raw,message",
        [
            ("INVALID_PASSWORD", "Incorrect password. Please try again."),
            ("EMAIL_EXISTS", "An account with this email already exists."),
            ("TOO_MANY_ATTEMPTS_TRY_LATER : Access to this account has been temporarily disabled",
             "Too many attempts. Please try again later."),
            ("WEAK_PASSWORD : Password should be at least 6 characters", "Password must be at least 6 characters."),
            ("SOMETHING_NEW", "Authentication failed. Please try again."),
        ],
    )
    def test_error_codes_mapped(self, raw, message):
        session = MagicMock()
        session.post.return_value = _response(status=400, body={"error": {"message": raw}})
        with pytest.raises(AuthError) as exc:
            HostedAuthProvider("key", session=session).sign_in("a@b.co", "x")
        assert str(exc.value) == message

    def test_network_failure(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(AuthError, match="Could not reach"):
            HostedAuthProvider("key", session=session).send_password_reset("a@b.co")

    def test_refresh_skipped_for_fresh_token(self):
        session = MagicMock()
        user = AuthUser(uid="u", email="a@b.co", id_token="id", refresh_token="rt", expires_at=time.time() + 3000)
        assert HostedAuthProvider("key", session=session).refresh(user) is user
        session.post.assert_not_called()

    def test_refresh_near_expiry(self):
        session = MagicMock()
        session.post.return_value = _response(body={
            "user_id": "u", "id_token": "new-id", "refresh_token": "new-rt", "expires_in": "3600",
        })
        user = AuthUser(uid="u", email="a@b.co", display_name="Sam", id_token="old", refresh_token="rt",
                        expires_at=time.time() - 5)
        fresh = HostedAuthProvider("key", session=session).refresh(user)

        assert fresh.id_token == "new-id"
        assert fresh.email == "a@b.co"
        assert fresh.display_name == "Sam"
        assert session.post.call_args.kwargs["data"]["grant_type"] == "refresh_token"


# =============================================================================
# SAVED SESSION
# =============================================================================


class TestSavedSession:

    @pytest.fixture(autouse=True)
    def session_file(self, tmp_path, monkeypatch):
        path = tmp_path / ".streamlit" / "user_session.json"
        monkeypatch.setattr(auth, "SESSION_FILE", str(path))
        return path

    def test_roundtrip(self):
        user = AuthUser(uid="u", email="a@b.co", id_token="id")
        auth.save_session(user)
        assert auth.load_session() == user

    def test_not_remembered_writes_nothing(self, session_file):
        auth.remember_session(AuthUser(uid="u", email="a@b.co"), remember=False)
        assert not session_file.exists()

    def test_not_remembered_clears_previous_session(self, session_file):
        auth.save_session(AuthUser(uid="previous", email="old@b.co", id_token="old-token"))
        auth.remember_session(AuthUser(uid="u", email="a@b.co"), remember=False)
        assert not session_file.exists()
        assert auth.load_session() is None

    def test_remembered_session_expires(self, session_file):
        auth.remember_session(AuthUser(uid="u", email="a@b.co"), remember=True)
        data = json.loads(session_file.read_text())
        assert data["session_expires"] > time.time() + 29 * 86400

    def test_expired_session_removed(self, session_file):
        auth.save_session(AuthUser(uid="u", email="a@b.co"))
        data = json.loads(session_file.read_text())
        data["session_expires"] = time.time() - 1
        session_file.write_text(json.dumps(data))

        assert auth.load_session() is None
        assert not session_file.exists()

    def test_missing_file(self):
        assert auth.load_session() is None
