"""
Authentication: user identity and session lifecycle.

  AuthProvider        - sign up / sign in / sign out / resolve a token
  RestAuthProvider    - hosted auth API ({url}/auth/v1/...) via requests
  LocalAuthProvider   - SQLite users + hashed session tokens (PBKDF2 passwords)
  AuthSession         - per-UI-session context object passed to the navigator
                        and the views; lifecycle:
                        loading -> authenticated | unauthenticated -> sign-out
"""
import asyncio
import base64
import hashlib
import hmac
import logging
import secrets
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

PBKDF2_ROUNDS = 310_000


class AuthError(Exception):
    """Raised when sign-in/sign-up fails or the auth service is unreachable."""
    pass


@dataclass(frozen=True)
class User:
    id: str
    email: str


@dataclass(frozen=True)
class AuthGrant:
    """A signed-in user plus the bearer token that identifies the session."""
    user: User
    access_token: str


class AuthState(Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Providers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AuthProvider(ABC):

    @abstractmethod
    def sign_up(self, email: str, password: str) -> AuthGrant:
        ...

    @abstractmethod
    def sign_in(self, email: str, password: str) -> AuthGrant:
        ...

    @abstractmethod
    def sign_out(self, access_token: str) -> None:
        ...

    @abstractmethod
    def user_for_token(self, access_token: str) -> Optional[User]:
        """Resolve a bearer token to its user, or None if invalid/expired."""


def hash_password(password: str, salt_b64: Optional[str] = None) -> Tuple[str, str]:
    salt = base64.b64decode(salt_b64) if salt_b64 else secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ROUNDS)
    return base64.b64encode(digest).decode("utf-8"), base64.b64encode(salt).decode("utf-8")


def verify_password(password: str, expected_hash: str, salt_b64: str) -> bool:
    computed, _ = hash_password(password, salt_b64)
    return hmac.compare_digest(computed, expected_hash)


def token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class LocalAuthProvider(AuthProvider):
    """Email/password accounts stored next to the local data tables."""

    MIN_PASSWORD_LENGTH = 6

    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_schema(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    password_salt TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auth_sessions (
                    token_hash TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)
            conn.commit()

    def _issue_token(self, conn: sqlite3.Connection, user: User) -> AuthGrant:
        raw_token = secrets.token_urlsafe(32)
        conn.execute(
            "INSERT INTO auth_sessions (token_hash, user_id, created_at) VALUES (?, ?, ?)",
            (token_hash(raw_token), user.id, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        return AuthGrant(user=user, access_token=raw_token)

    def sign_up(self, email, password):
        email = _normalize_email(email)
        if "@" not in email:
            raise AuthError("A valid email address is required")
        if len(password or "") < self.MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {self.MIN_PASSWORD_LENGTH} characters")
        pw_hash, salt = hash_password(password)
        user = User(id=str(uuid.uuid4()), email=email)
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO users (id, email, password_hash, password_salt, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (user.id, email, pw_hash, salt, datetime.now(timezone.utc).isoformat()),
                )
                grant = self._issue_token(conn, user)
        except sqlite3.IntegrityError:
            raise AuthError("User already registered")
        logger.info(f"Registered user {email}")
        return grant

    def sign_in(self, email, password):
        email = _normalize_email(email)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, email, password_hash, password_salt FROM users WHERE email = ?",
                (email,),
            ).fetchone()
            if not row or not verify_password(password or "", row["password_hash"], row["password_salt"]):
                raise AuthError("Invalid login credentials")
            return self._issue_token(conn, User(id=row["id"], email=row["email"]))

    def sign_out(self, access_token):
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM auth_sessions WHERE token_hash = ?",
                (token_hash(access_token),),
            )
            conn.commit()

    def user_for_token(self, access_token):
        if not access_token:
            return None
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT u.id, u.email FROM auth_sessions s
                JOIN users u ON u.id = s.user_id
                WHERE s.token_hash = ?
                """,
                (token_hash(access_token),),
            ).fetchone()
        return User(id=row["id"], email=row["email"]) if row else None


class RestAuthProvider(AuthProvider):
    """Client for the hosted auth API (GoTrue-style endpoints)."""

    def __init__(self, url: str, api_key: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = url.rstrip("/") + "/auth/v1"
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, body: Optional[dict] = None, params=None,
              token: Optional[str] = None) -> Dict[str, Any]:
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            r = self.session.post(
                f"{self.base_url}/{path}",
                json=body,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"Auth service unreachable: {e}") from e
        if not r.ok:
            raise AuthError(_auth_error_message(r))
        if not r.content:
            return {}
        try:
            return r.json()
        except ValueError as e:
            raise AuthError("Auth service returned invalid JSON") from e

    @staticmethod
    def _grant(payload: Dict[str, Any]) -> AuthGrant:
        token = payload.get("access_token")
        user = payload.get("user") or {}
        if not token or not user.get("id"):
            # Sign-up with email confirmation enabled returns no session
            raise AuthError("No session returned; confirm the email address first")
        return AuthGrant(user=User(id=str(user["id"]), email=user.get("email", "")), access_token=token)

    def sign_up(self, email, password):
        return self._grant(self._post("signup", {"email": email, "password": password}))

    def sign_in(self, email, password):
        payload = self._post(
            "token",
            {"email": email, "password": password},
            params={"grant_type": "password"},
        )
        return self._grant(payload)

    def sign_out(self, access_token):
        self._post("logout", token=access_token)

    def user_for_token(self, access_token):
        if not access_token:
            return None
        try:
            r = self.session.get(
                f"{self.base_url}/user",
                headers={"apikey": self.api_key, "Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"Auth service unreachable: {e}") from e
        if r.status_code in (401, 403):
            return None
        if not r.ok:
            raise AuthError(_auth_error_message(r))
        try:
            data = r.json()
        except ValueError as e:
            raise AuthError("Auth service returned invalid JSON") from e
        if not isinstance(data, dict) or not data.get("id"):
            raise AuthError("Auth service returned no user")
        return User(id=str(data["id"]), email=data.get("email", ""))


def _auth_error_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return f"Auth request failed (HTTP {r.status_code})"
    if isinstance(body, dict):
        return str(
            body.get("error_description") or body.get("msg")
            or body.get("message") or body.get("error")
            or f"Auth request failed (HTTP {r.status_code})"
        )
    return f"Auth request failed (HTTP {r.status_code})"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# AuthSession
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AuthSession:
    """
    Auth state for one UI session.

    Starts LOADING; initialize() resolves a stored token (if any) and settles
    on AUTHENTICATED or UNAUTHENTICATED. Listeners are called with the session
    after every state change.
    """

    def __init__(self, provider: AuthProvider):
        self.provider = provider
        self.state = AuthState.LOADING
        self.user: Optional[User] = None
        self.access_token: Optional[str] = None
        self._listeners: List[Callable[["AuthSession"], None]] = []

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    def subscribe(self, callback: Callable[["AuthSession"], None]) -> None:
        self._listeners.append(callback)

    def _set(self, state: AuthState, grant: Optional[AuthGrant] = None) -> None:
        self.state = state
        self.user = grant.user if grant else None
        self.access_token = grant.access_token if grant else None
        for callback in list(self._listeners):
            callback(self)

    async def initialize(self, access_token: Optional[str] = None) -> AuthState:
        """Restore a previous session from its token, if one is given."""
        user = None
        if access_token:
            try:
                user = await asyncio.to_thread(self.provider.user_for_token, access_token)
            except AuthError as e:
                logger.warning(f"Could not restore session: {e}")
        if user:
            self._set(AuthState.AUTHENTICATED, AuthGrant(user, access_token))
        else:
            self._set(AuthState.UNAUTHENTICATED)
        return self.state

    async def sign_in(self, email: str, password: str) -> User:
        grant = await asyncio.to_thread(self.provider.sign_in, email, password)
        self._set(AuthState.AUTHENTICATED, grant)
        logger.info(f"Signed in {grant.user.email}")
        return grant.user

    async def sign_up(self, email: str, password: str) -> User:
        grant = await asyncio.to_thread(self.provider.sign_up, email, password)
        self._set(AuthState.AUTHENTICATED, grant)
        return grant.user

    async def sign_out(self) -> None:
        """Revoke the token (best effort) and tear the session down."""
        token = self.access_token
        if token:
            try:
                await asyncio.to_thread(self.provider.sign_out, token)
            except AuthError as e:
                logger.warning(f"Sign-out request failed: {e}")
        self._set(AuthState.UNAUTHENTICATED)
