"""
Credential and session-token lifecycle.

- TokenSettings: signing secrets and lifetimes, frozen at startup
- RefreshTokenStore: where the single live refresh token of an account lives
- TokenManager: credential checks, issuing, rotating and revoking token pairs

An account accepts exactly one refresh token: the value stored on it.
Issuing a pair overwrites that value, so every earlier refresh token stops
working. Access tokens are never looked up server-side; they stay valid
until they expire.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, NamedTuple, Optional

import jwt
from marshmallow import ValidationError
from sqlalchemy import func, or_, update
from sqlalchemy.orm.util import identity_key

from models.user import User
from utils.exceptions import ConfigurationError, InvalidCredentials, InvalidToken, Unauthenticated
from utils.security import DUMMY_HASH, generate_jti, verify_password

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenSettings:
    access_secret: str
    refresh_secret: str
    access_ttl: timedelta
    refresh_ttl: timedelta
    algorithm: str = "HS256"

    def __post_init__(self):
        if not self.access_secret or not self.refresh_secret:
            raise ConfigurationError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be set")
        if self.access_ttl <= timedelta(0) or self.refresh_ttl <= timedelta(0):
            raise ConfigurationError("Token lifetimes must be positive")

    @classmethod
    def from_config(cls, config) -> "TokenSettings":
        """Build settings from a Flask config mapping."""
        return cls(
            access_secret=config.get("ACCESS_TOKEN_SECRET") or "",
            refresh_secret=config.get("REFRESH_TOKEN_SECRET") or "",
            access_ttl=config["ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
        )


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str


class RefreshTokenStore:
    """Holds the refresh token an account currently accepts.

    Subclasses may keep a revocation set or token families instead; the
    manager only relies on these three calls.
    """

    def current(self, user_id: str) -> Optional[str]:
        raise NotImplementedError

    def replace(self, user_id: str, new_token: str, expected: Optional[str] = None) -> bool:
        """Store new_token. When expected is given, only if it is still the stored value."""
        raise NotImplementedError

    def clear(self, user_id: str) -> None:
        raise NotImplementedError


class UserColumnRefreshTokenStore(RefreshTokenStore):
    """Keeps the token on users.refresh_token; the swap is a single UPDATE."""

    def __init__(self, storage):
        self.storage = storage

    def current(self, user_id: str) -> Optional[str]:
        user = self.storage.get(User, user_id)
        return user.refresh_token if user else None

    def _execute(self, user_id: str, stmt) -> int:
        session = self.storage.get_session()
        result = session.execute(stmt.execution_options(synchronize_session=False))
        self.storage.save()
        # A loaded User still holds the old value
        loaded = session.identity_map.get(identity_key(User, user_id))
        if loaded is not None:
            session.expire(loaded, ["refresh_token"])
        return result.rowcount

    def replace(self, user_id: str, new_token: str, expected: Optional[str] = None) -> bool:
        stmt = update(User).where(User.id == user_id)
        if expected is not None:
            stmt = stmt.where(User.refresh_token == expected)
        return self._execute(user_id, stmt.values(refresh_token=new_token)) == 1

    def clear(self, user_id: str) -> None:
        self._execute(user_id, update(User).where(User.id == user_id).values(refresh_token=None))


class TokenManager:
    """Password verification plus issue / refresh / revoke of token pairs."""

    def __init__(
        self,
        settings: TokenSettings,
        storage,
        refresh_store: Optional[RefreshTokenStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.storage = storage
        self.refresh_store = refresh_store or UserColumnRefreshTokenStore(storage)
        self.clock = clock

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def find_account(self, identifier: str) -> Optional[User]:
        """Look up an account by username or email (both stored lower-case)."""
        ident = identifier.strip().lower()
        session = self.storage.get_session()
        return (
            session.query(User)
            .filter(or_(func.lower(User.username) == ident, func.lower(User.email) == ident))
            .first()
        )

    def verify_credentials(self, identifier: str, password: str) -> User:
        if not identifier or not identifier.strip():
            raise ValidationError({"identifier": ["username or email is required"]})
        if not password:
            raise ValidationError({"password": ["password is required"]})

        user = self.find_account(identifier)
        if user is None:
            verify_password(password, DUMMY_HASH)
            logger.info("login failed: no account for %r", identifier)
            raise InvalidCredentials()
        if not user.check_password(password):
            logger.info("login failed: bad password for user %s", user.id)
            raise InvalidCredentials()
        return user

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _encode(self, claims: Dict[str, Any], token_type: str) -> str:
        now = self.clock()
        if token_type == ACCESS:
            secret, ttl = self.settings.access_secret, self.settings.access_ttl
        else:
            secret, ttl = self.settings.refresh_secret, self.settings.refresh_ttl
        payload = dict(claims)
        payload.update({
            "type": token_type,
            "jti": generate_jti(),
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        })
        return jwt.encode(payload, secret, algorithm=self.settings.algorithm)

    def _decode(self, token: Optional[str], token_type: str) -> Dict[str, Any]:
        if not token:
            raise Unauthenticated()
        secret = self.settings.access_secret if token_type == ACCESS else self.settings.refresh_secret
        try:
            decoded = jwt.decode(
                token,
                secret,
                algorithms=[self.settings.algorithm],
                options={"require": ["exp", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidToken("Token expired")
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(f"Invalid token: {exc}")

        if decoded.get("type") != token_type:
            raise InvalidToken("Wrong token type")
        return decoded

    def create_access_token(self, user: User) -> str:
        return self._encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "username": user.username,
                "full_name": user.full_name,
            },
            ACCESS,
        )

    def create_refresh_token(self, user: User) -> str:
        return self._encode({"sub": str(user.id)}, REFRESH)

    def verify_access_token(self, token: Optional[str]) -> Dict[str, Any]:
        """Signature, expiry and type only; no database round trip."""
        return self._decode(token, ACCESS)

    def _issue(self, user: User, expected: Optional[str] = None) -> TokenPair:
        pair = TokenPair(self.create_access_token(user), self.create_refresh_token(user))
        if not self.refresh_store.replace(str(user.id), pair.refresh_token, expected=expected):
            # Someone rotated the token between our read and our write
            logger.warning("refresh token for user %s rotated concurrently", user.id)
            raise InvalidToken("Refresh token is expired or used")
        return pair

    def issue_token_pair(self, user: User) -> TokenPair:
        """Create a fresh pair and make its refresh token the only live one."""
        return self._issue(user)

    def refresh(self, presented: Optional[str]) -> TokenPair:
        decoded = self._decode(presented, REFRESH)

        user = self.storage.get(User, decoded.get("sub"))
        if user is None:
            raise InvalidToken("Invalid refresh token")

        stored = self.refresh_store.current(str(user.id))
        if not stored or not hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8")):
            logger.warning("stale or foreign refresh token presented for user %s", user.id)
            raise InvalidToken("Refresh token is expired or used")

        return self._issue(user, expected=presented)

    def revoke(self, user: User) -> None:
        self.refresh_store.clear(str(user.id))
        logger.info("session revoked for user %s", user.id)
