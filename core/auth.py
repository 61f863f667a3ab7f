"""Email/password authentication against the hosted identity service,
with a local accounts table as fallback, plus the login/sign-up screens.
"""
import hashlib
import json
import logging
import os
import secrets
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional

import requests
import streamlit as st
from pydantic import ValidationError

from core.config import APP_TZ
from core.errors import AuthError
from core.schemas import LoginForm, SignupForm, format_validation_error
from core.store import DBConnection, is_postgres

SESSION_FILE = ".streamlit/user_session.json"
SESSION_DURATION_DAYS = 30
IDENTITY_API = "https://identitytoolkit.googleapis.com/v1"
TOKEN_API = "https://securetoken.googleapis.com/v1/token"
REQUEST_TIMEOUT = 15

logger = logging.getLogger(__name__)

# Provider error codes -> messages shown in the UI
AUTH_MESSAGES = {
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Incorrect password. Please try again.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "USER_DISABLED": "This account has been disabled.",
    "EMAIL_EXISTS": "An account with this email already exists.",
    "WEAK_PASSWORD": "Password must be at least 6 characters.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
    "INVALID_EMAIL": "Invalid email address.",
    "TOKEN_EXPIRED": "Your session has expired. Please log in again.",
    "INVALID_REFRESH_TOKEN": "Your session has expired. Please log in again.",
}


@dataclass
class AuthUser:
    uid: str
    email: str
    display_name: str = ""
    id_token: str = ""
    refresh_token: str = ""
    expires_at: float = 0.0

    @property
    def name(self) -> str:
        return self.display_name or self.email.split("@")[0]


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Salted SHA-256 hash stored as ``salt$digest``."""
    salt = salt or secrets.token_hex(8)
    digest = hashlib.sha256(f"{salt}{password}".encode()).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: str, stored: str) -> bool:
    salt, _, digest = (stored or "").partition("$")
    if not digest:
        return False
    return secrets.compare_digest(hash_password(password, salt), stored)


class AuthProvider:
    def sign_in(self, email: str, password: str) -> AuthUser:
        raise NotImplementedError

    def sign_up(self, email: str, password: str) -> AuthUser:
        raise NotImplementedError

    def send_password_reset(self, email: str) -> None:
        raise NotImplementedError

    def reauthenticate(self, user: AuthUser, password: str) -> AuthUser:
        """Confirm the current user's password before a sensitive action."""
        return self.sign_in(user.email, password)

    def refresh(self, user: AuthUser) -> AuthUser:
        return user


class HostedAuthProvider(AuthProvider):
    """Identity REST API (email/password accounts)."""

    def __init__(self, api_key: str, session=None):
        self.api_key = api_key
        self.session = session or requests.Session()

    def _post(self, url: str, payload: dict, form: bool = False) -> dict:
        try:
            if form:
                response = self.session.post(url, params={"key": self.api_key}, data=payload, timeout=REQUEST_TIMEOUT)
            else:
                response = self.session.post(url, params={"key": self.api_key}, json=payload, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            logger.exception("Identity service unreachable")
            raise AuthError("Could not reach the authentication service.") from e
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            raw = (body.get("error") or {}).get("message", "") if isinstance(body, dict) else ""
            code = raw.split(":")[0].split(" ")[0].strip()
            logger.warning("Identity service rejected request: %s", raw or response.status_code)
            raise AuthError(AUTH_MESSAGES.get(code, "Authentication failed. Please try again."), code)
        return body

    @staticmethod
    def _user_from(body: dict) -> AuthUser:
        return AuthUser(
            uid=body.get("localId") or body.get("user_id", ""),
            email=body.get("email", ""),
            display_name=body.get("displayName", ""),
            id_token=body.get("idToken") or body.get("id_token", ""),
            refresh_token=body.get("refreshToken") or body.get("refresh_token", ""),
            expires_at=time.time() + int(body.get("expiresIn") or body.get("expires_in") or 3600),
        )

    def sign_in(self, email, password):
        body = self._post(
            f"{IDENTITY_API}/accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._user_from(body)

    def sign_up(self, email, password):
        body = self._post(
            f"{IDENTITY_API}/accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._user_from(body)

    def send_password_reset(self, email):
        self._post(f"{IDENTITY_API}/accounts:sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})

    def refresh(self, user):
        if user.expires_at - time.time() > 60 or not user.refresh_token:
            return user
        body = self._post(
            TOKEN_API,
            {"grant_type": "refresh_token", "refresh_token": user.refresh_token},
            form=True,
        )
        fresh = self._user_from(body)
        fresh.email = fresh.email or user.email
        fresh.display_name = user.display_name
        return fresh


class LocalAuthProvider(AuthProvider):
    """Accounts stored in the local ``users`` table."""

    def __init__(self, conn: DBConnection):
        self.conn = conn
        self.placeholder = "%s" if is_postgres(conn) else "?"

    def _get_user(self, email: str) -> Optional[dict]:
        p = self.placeholder
        cur = self.conn.cursor()
        try:
            cur.execute(
                f"SELECT uid, email, password_hash, display_name FROM users WHERE LOWER(email) = LOWER({p})",
                ((email or "").strip(),),
            )
            row = cur.fetchone()
        finally:
            cur.close()
        if not row:
            return None
        return {"uid": row[0], "email": row[1], "password_hash": row[2], "display_name": row[3] or ""}

    def sign_in(self, email, password):
        user = self._get_user(email)
        if user is None:
            raise AuthError(AUTH_MESSAGES["INVALID_LOGIN_CREDENTIALS"], "INVALID_LOGIN_CREDENTIALS")
        if not verify_password(password, user["password_hash"]):
            raise AuthError(AUTH_MESSAGES["INVALID_PASSWORD"], "INVALID_PASSWORD")
        return AuthUser(uid=user["uid"], email=user["email"], display_name=user["display_name"])

    def sign_up(self, email, password):
        email = (email or "").strip().lower()
        if self._get_user(email):
            raise AuthError(AUTH_MESSAGES["EMAIL_EXISTS"], "EMAIL_EXISTS")
        uid = secrets.token_hex(14)
        p = self.placeholder
        cur = self.conn.cursor()
        try:
            cur.execute(
                f"INSERT INTO users (uid, email, password_hash, display_name, created_at) VALUES ({p}, {p}, {p}, {p}, {p})",
                (uid, email, hash_password(password), "", datetime.now(APP_TZ).isoformat()),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()
        return AuthUser(uid=uid, email=email)

    def send_password_reset(self, email):
        raise AuthError("Password reset email is not available for local accounts. Ask the administrator to reset it.")


# ---------------------------------------------------------------------------
# Session state and subscriptions
# ---------------------------------------------------------------------------

def subscribe_auth_state(key: str, callback: Callable[[Optional[AuthUser]], None]) -> None:
    """Register ``callback`` to run whenever the signed-in user changes.
    Re-registering the same key replaces the previous callback.
    """
    listeners = st.session_state.setdefault("auth_listeners", {})
    listeners[key] = callback


def _notify(user: Optional[AuthUser]) -> None:
    for key, callback in list(st.session_state.get("auth_listeners", {}).items()):
        try:
            callback(user)
        except Exception:
            logger.exception("Auth state listener %s failed", key)


def _set_user(user: Optional[AuthUser]) -> None:
    st.session_state["auth_user"] = user
    st.session_state["authenticated"] = user is not None
    _notify(user)


def save_session(user: AuthUser) -> None:
    """Save user session to file; it expires after SESSION_DURATION_DAYS."""
    try:
        os.makedirs(os.path.dirname(SESSION_FILE), exist_ok=True)
        data = asdict(user)
        data["session_expires"] = time.time() + SESSION_DURATION_DAYS * 86400
        with open(SESSION_FILE, "w") as f:
            json.dump(data, f)
    except OSError:
        logger.exception("Could not persist session")


def remember_session(user: AuthUser, remember: bool) -> None:
    """Persist the session only when asked; otherwise drop any saved one."""
    if remember:
        save_session(user)
    else:
        clear_session()


def load_session() -> Optional[AuthUser]:
    """Load user session from file if valid."""
    if not os.path.exists(SESSION_FILE):
        return None
    try:
        with open(SESSION_FILE, "r") as f:
            data = json.load(f)
    except (OSError, ValueError):
        logger.exception("Could not read saved session")
        return None
    expires = data.pop("session_expires", None)
    if expires and time.time() > expires:
        clear_session()
        return None
    try:
        return AuthUser(**data)
    except TypeError:
        clear_session()
        return None


def clear_session() -> None:
    """Delete session file."""
    try:
        if os.path.exists(SESSION_FILE):
            os.remove(SESSION_FILE)
    except OSError:
        logger.exception("Could not remove saved session")


def require_auth(provider: AuthProvider) -> bool:
    """Check if user is authenticated, restoring a saved session if present."""
    user = st.session_state.get("auth_user")
    if user is None:
        user = load_session()
        if user is None:
            return False
    try:
        fresh = provider.refresh(user)
    except AuthError as e:
        logger.info("Session refresh failed: %s", e)
        logout()
        return False
    if fresh is not user or st.session_state.get("auth_user") is None:
        _set_user(fresh)
    return True


def get_current_user() -> Optional[AuthUser]:
    return st.session_state.get("auth_user")


def logout() -> None:
    """Clear authentication session."""
    clear_session()
    _set_user(None)


# ---------------------------------------------------------------------------
# Screens
# ---------------------------------------------------------------------------

def login_form(provider: AuthProvider) -> None:
    """Display login, sign-up and forgot-password forms."""
    view = st.session_state.setdefault("auth_view", "login")
    st.markdown("## \U0001F4E6 StockFlow")

    if view == "login":
        st.markdown("### \U0001F510 Welcome Back!")
        st.caption("Enter your credentials to access your account.")
        with st.form("login_form", clear_on_submit=False):
            email = st.text_input("Email", placeholder="you@example.com")
            password = st.text_input("Password", type="password")
            remember_me = st.checkbox("Remember me on this device", value=False)
            submit = st.form_submit_button("Log In", width="stretch")
            if submit:
                try:
                    values = LoginForm(email=email, password=password)
                    user = provider.sign_in(values.email, values.password)
                except ValidationError as e:
                    st.warning(format_validation_error(e))
                except AuthError as e:
                    st.error(f"❌ {e}")
                else:
                    remember_session(user, remember_me)
                    _set_user(user)
                    st.rerun()
        col1, col2 = st.columns(2)
        if col1.button("\U0001F4DD Don't have an account? Sign up"):
            st.session_state.auth_view = "signup"
            st.rerun()
        if col2.button("\U0001F511 Forgot password?"):
            st.session_state.auth_view = "forgot"
            st.rerun()

    elif view == "signup":
        st.markdown("### \U0001F4DD Create an Account")
        with st.form("signup_form", clear_on_submit=False):
            email = st.text_input("Email", key="signup_email")
            password = st.text_input("Password", type="password", key="signup_password")
            confirm = st.text_input("Confirm Password", type="password", key="signup_confirm")
            if st.form_submit_button("Create Account", width="stretch"):
                try:
                    values = SignupForm(email=email, password=password, confirm_password=confirm)
                    user = provider.sign_up(values.email, values.password)
                except ValidationError as e:
                    st.error(format_validation_error(e))
                except AuthError as e:
                    st.error(f"❌ {e}")
                else:
                    st.toast("Your account has been created.", icon="✅")
                    clear_session()
                    _set_user(user)
                    st.rerun()
        if st.button("\U0001F510 Already have an account? Log in"):
            st.session_state.auth_view = "login"
            st.rerun()

    else:
        st.markdown("### \U0001F4E8 Reset Password")
        with st.form("forgot_form"):
            email = st.text_input("Email", key="forgot_email")
            if st.form_submit_button("Send Reset Link", width="stretch"):
                try:
                    provider.send_password_reset(LoginForm(email=email, password="-").email)
                except ValidationError:
                    st.error("Invalid email address.")
                except AuthError as e:
                    st.error(f"❌ {e}")
                else:
                    st.success(
                        "If an account exists for this email, you will receive a password reset link shortly."
                    )
        if st.button("\U0001F510 Remembered your password? Log in"):
            st.session_state.auth_view = "login"
            st.rerun()


def password_confirmation(provider: AuthProvider, key: str, action_description: str) -> bool:
    """Inline re-authentication prompt; returns True once the password checks out."""
    user = get_current_user()
    st.info(f"\U0001F6E1️ To {action_description}, please re-enter your password.")
    password = st.text_input("Password", type="password", key=f"{key}_password")
    col1, col2 = st.columns(2)
    if col2.button("Cancel", key=f"{key}_cancel"):
        st.session_state.pop(key, None)
        st.rerun()
    if col1.button("Confirm", key=f"{key}_confirm", disabled=not password):
        try:
            provider.reauthenticate(user, password)
        except AuthError as e:
            logger.info("Re-authentication failed for %s", user.email if user else "?")
            st.error(str(e))
            return False
        return True
    return False
