"""
Authentication and role checks.

Two modes, selected by AUTH_DISABLED:
- disabled (default): every request is a demo user built from the
  x-demo-role / x-demo-user / x-demo-merchant-id headers
- enabled: bearer session tokens issued by /api/auth/login for the demo
  accounts below, kept in an in-memory session store with expiry

Routes only ever see a UserContext and guard themselves with require_role().
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from fastapi import Depends, Request
from pydantic import BaseModel, Field

from core.errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)


# =============================================================================
# MODELS
# =============================================================================

class UserContext(BaseModel):
    """The authenticated caller."""
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    merchant_id: Optional[int] = None


class LoginRequest(BaseModel):
    """Login request model."""
    email: str
    password: str


class LoginResponse(BaseModel):
    """Login response model."""
    success: bool
    message: str
    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None


# =============================================================================
# ROLES
# =============================================================================

def extract_roles(roles: Any) -> List[str]:
    """Roles from a list or a comma-separated string."""
    if isinstance(roles, (list, tuple)):
        return [str(role).strip() for role in roles if str(role).strip()]
    if isinstance(roles, str) and roles:
        return [role.strip() for role in roles.split(",") if role.strip()]
    return []


def has_role(user: Optional[UserContext], required_roles: List[str]) -> bool:
    """True if the user holds at least one of the required roles."""
    if user is None:
        return False
    return any(role in user.roles for role in required_roles)


# =============================================================================
# PASSWORD UTILITIES
# =============================================================================

def hash_password(password: str) -> str:
    """
    Hash a password using SHA-256 with salt.

    Note: For production, use bcrypt or argon2.
    """
    salt = "returns_insights_demo_salt_"
    salted = salt + password
    return hashlib.sha256(salted.encode()).hexdigest()


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    return secrets.compare_digest(hash_password(password), password_hash)


def generate_session_token() -> str:
    """Generate a secure session token."""
    return secrets.token_urlsafe(32)


# =============================================================================
# DEMO ACCOUNTS
# =============================================================================

DEFAULT_PASSWORD = "demo123"
DEFAULT_PASSWORD_HASH = hash_password(DEFAULT_PASSWORD)

DEMO_ACCOUNTS: Dict[str, Dict[str, Any]] = {
    "customer@demo.local": {
        "sub": "demo|customer",
        "name": "Customer Demo",
        "roles": ["customer"],
        "merchant_id": None,
        "password_hash": DEFAULT_PASSWORD_HASH,
    },
    "merchant@demo.local": {
        "sub": "demo|merchant",
        "name": "Merchant Demo",
        "roles": ["merchant"],
        "merchant_id": 1,
        "password_hash": DEFAULT_PASSWORD_HASH,
    },
    "admin@demo.local": {
        "sub": "demo|admin",
        "name": "Admin Demo",
        "roles": ["merchant", "customer"],
        "merchant_id": 1,
        "password_hash": DEFAULT_PASSWORD_HASH,
    },
}


def authenticate_account(email: str, password: str) -> Optional[UserContext]:
    """Check demo credentials; None when they do not match."""
    account = DEMO_ACCOUNTS.get(email.strip().lower())
    if account is None or not verify_password(password, account["password_hash"]):
        return None
    return UserContext(
        sub=account["sub"],
        email=email.strip().lower(),
        name=account["name"],
        roles=extract_roles(account["roles"]),
        merchant_id=account["merchant_id"],
    )


# =============================================================================
# SESSION STORE (In-Memory for Demo)
# =============================================================================

class SessionStore:
    """
    Token -> user sessions with expiry.

    In production, store sessions in Redis or the database.
    """

    def __init__(self, ttl_hours: int = 24):
        self.ttl = timedelta(hours=ttl_hours)
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def create(self, user: UserContext) -> str:
        """Create a new session for a user and return the token."""
        token = generate_session_token()
        now = datetime.now(timezone.utc)
        self._sessions[token] = {
            "user": user,
            "created_at": now,
            "expires_at": now + self.ttl,
        }
        logger.info(f"Created session for user {user.sub}")
        return token

    def get(self, token: Optional[str]) -> Optional[UserContext]:
        """User for a token, or None if invalid/expired."""
        if not token or token not in self._sessions:
            return None

        session = self._sessions[token]
        if datetime.now(timezone.utc) > session["expires_at"]:
            del self._sessions[token]
            return None

        return session["user"]

    def delete(self, token: Optional[str]) -> bool:
        """Delete a session (logout)."""
        if token and token in self._sessions:
            del self._sessions[token]
            return True
        return False


# =============================================================================
# REQUEST AUTHENTICATION
# =============================================================================

def demo_user(headers: Mapping[str, str]) -> UserContext:
    """User described by the x-demo-* headers."""
    roles = extract_roles(headers.get("x-demo-role") or "customer")
    primary = roles[0] if roles else "customer"
    merchant_header = headers.get("x-demo-merchant-id")

    try:
        merchant_id = int(merchant_header) if merchant_header else 1
    except ValueError:
        merchant_id = 1

    return UserContext(
        sub=headers.get("x-demo-user") or f"demo|{primary}-demo",
        email=f"{primary}@demo.local",
        name="Merchant Demo" if primary == "merchant" else "Customer Demo",
        roles=roles or ["customer"],
        merchant_id=merchant_id,
    )


def bearer_token(request: Request) -> Optional[str]:
    """Token from the Authorization header, falling back to the auth_token cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return request.cookies.get("auth_token")


def get_current_user(request: Request) -> UserContext:
    """FastAPI dependency resolving the caller."""
    if request.app.state.settings.auth_disabled:
        return demo_user(request.headers)

    token = bearer_token(request)
    if not token:
        raise UnauthorizedError()

    user = request.app.state.sessions.get(token)
    if user is None:
        raise UnauthorizedError("Invalid or expired session")
    return user


def require_role(*roles: str):
    """Dependency factory: 403 unless the caller holds one of the roles."""
    required = list(roles)

    def role_guard(user: UserContext = Depends(get_current_user)) -> UserContext:
        if not has_role(user, required):
            raise ForbiddenError(f"Requires one of roles: {', '.join(required)}")
        return user

    return role_guard
