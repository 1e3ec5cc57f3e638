"""
auth/tokens.py -- Stateless bearer token codec (HS256 JWT via python-jose).

Security design decisions:
  Signing: HS256 with the process-wide SECRET_KEY. The key and the token TTL
       are fixed when the TokenCodec is constructed; get_token_codec() builds
       the single process instance from Settings and caches it.

  Claims: sub (username), role, iat, exp. All four are required. iat/exp are
       NumericDate values carried at millisecond precision so a decoded
       TokenClaims compares equal to the one that was encoded.

  Failure kinds: verification raises one of three distinct errors because
       callers react differently to them -- TokenExpired means "log in again",
       TokenMalformed / TokenSignatureInvalid mean "this was never ours".
         - header or payload cannot be decoded, claim missing or mistyped,
           unknown role                               -> TokenMalformed
         - signature mismatch, or alg other than HS256 -> TokenSignatureInvalid
         - now >= expires_at                          -> TokenExpired

  Lifecycle: valid -> expired, time-driven and irreversible. There is no
       server-side revocation list; logout is the client discarding the token.

  Logging: tokens are never logged, not even at DEBUG.

Layer rule: no imports from api/ or projects/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.roles import Role
from core.config import get_settings
from core.errors import TokenExpired, TokenMalformed, TokenSignatureInvalid

logger = logging.getLogger("nexus.auth")

_ALGORITHM = "HS256"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_PRECISION = timedelta(milliseconds=1)

# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    """Return moment as an aware UTC datetime. Naive values are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _truncate(moment: datetime) -> datetime:
    moment = _as_utc(moment)
    return moment - timedelta(microseconds=moment.microsecond % 1000)


def _to_numeric_date(moment: datetime) -> float:
    # Whole milliseconds divided by 1000: the shortest float repr survives the
    # JSON round trip, so _from_numeric_date recovers the exact millisecond.
    return ((moment - _EPOCH) // _PRECISION) / 1000


def _from_numeric_date(value: float) -> datetime:
    return _EPOCH + timedelta(milliseconds=round(value * 1000))


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, signature-checked token contents.

    Datetimes are normalized to aware UTC at millisecond precision on
    construction, which is the precision the wire format carries.
    """

    subject: str
    role: Role
    issued_at: datetime
    expires_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "issued_at", _truncate(self.issued_at))
        object.__setattr__(self, "expires_at", _truncate(self.expires_at))

    def is_expired(self, now: datetime) -> bool:
        return _as_utc(now) >= self.expires_at


@dataclass(frozen=True)
class IssuedToken:
    """A freshly signed token: the opaque wire string plus the claims it carries."""

    raw: str
    claims: TokenClaims

    @property
    def expires_in(self) -> int:
        """Lifetime in whole seconds, for the expires_in field of login responses."""
        return int((self.claims.expires_at - self.claims.issued_at).total_seconds())

    def __repr__(self) -> str:
        # Keep the signed string out of reprs so it cannot leak through logs or tracebacks.
        return f"IssuedToken(claims={self.claims!r})"


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Signs and verifies bearer tokens with a fixed symmetric key.

    Usage:
        codec = TokenCodec(secret_key, ttl=timedelta(hours=1))
        token = codec.issue("alice", Role.DEVELOPER)
        claims = codec.verify(token.raw)
        newer = codec.refresh(token.raw)

    Instances hold no mutable state and are safe to share across threads.
    """

    def __init__(self, secret_key: str, ttl: timedelta) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a non-empty secret key.")
        if ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive.")
        self._secret_key = secret_key
        self.ttl = ttl

    # ------------------------------------------------------------------
    # Raw encode / decode
    # ------------------------------------------------------------------

    def encode(self, claims: TokenClaims) -> str:
        payload = {
            "sub": claims.subject,
            "role": claims.role.value,
            "iat": _to_numeric_date(claims.issued_at),
            "exp": _to_numeric_date(claims.expires_at),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def decode(self, raw: str) -> TokenClaims:
        """Check structure and signature and return the claims. Expiry is NOT checked here."""
        if not isinstance(raw, str) or not raw:
            raise TokenMalformed()
        try:
            header = jwt.get_unverified_header(raw)
            jwt.get_unverified_claims(raw)
        except JWTError as exc:
            raise TokenMalformed() from exc
        if header.get("alg") != _ALGORITHM:
            raise TokenSignatureInvalid()

        try:
            payload = jwt.decode(
                raw,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except (JWTClaimsError, TypeError, ValueError) as exc:
            # Registered claims of the wrong type (e.g. numeric sub, string or null iat).
            raise TokenMalformed() from exc
        except JWTError as exc:
            raise TokenSignatureInvalid() from exc

        return _claims_from_payload(payload)

    # ------------------------------------------------------------------
    # Contract used by the rest of the system
    # ------------------------------------------------------------------

    def issue(
        self,
        subject: str,
        role: Role,
        now: datetime | None = None,
        ttl: timedelta | None = None,
    ) -> IssuedToken:
        """Build and sign a token for subject with expires_at = now + ttl."""
        if not subject:
            raise ValueError("Token subject must be a non-empty username.")
        lifetime = self.ttl if ttl is None else ttl
        if lifetime <= timedelta(0):
            raise ValueError("Token TTL must be positive.")
        issued_at = _truncate(now or utcnow())
        claims = TokenClaims(
            subject=subject,
            role=Role(role),
            issued_at=issued_at,
            expires_at=issued_at + lifetime,
        )
        return IssuedToken(raw=self.encode(claims), claims=claims)

    def verify(self, raw: str, now: datetime | None = None) -> TokenClaims:
        """Decode raw and reject it if expired at now. Deterministic for a given (raw, now)."""
        claims = self.decode(raw)
        if claims.is_expired(now or utcnow()):
            raise TokenExpired()
        return claims

    def refresh(self, raw: str, now: datetime | None = None, role: Role | None = None) -> IssuedToken:
        """Exchange a currently valid token for a fresh one with the same subject.

        The new token carries role when given (the subject's current role),
        otherwise the role claim of the old token.

        Only non-expired tokens can be refreshed -- an expired token raises
        TokenExpired and the caller must log in again. The new issued_at is
        at least one millisecond after the old one so the new expiry is
        strictly later even when both are minted within the same millisecond.
        """
        current = _truncate(now or utcnow())
        claims = self.verify(raw, current)
        issued_at = max(current, claims.issued_at + _PRECISION)
        return self.issue(claims.subject, role or claims.role, now=issued_at)


def _claims_from_payload(payload: dict) -> TokenClaims:
    subject = payload.get("sub")
    role = payload.get("role")
    iat = payload.get("iat")
    exp = payload.get("exp")
    if not isinstance(subject, str) or not subject:
        raise TokenMalformed("Token subject claim is missing.")
    for value in (iat, exp):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TokenMalformed("Token time claims are missing or not numeric.")
    try:
        parsed_role = Role(role)
        issued_at = _from_numeric_date(iat)
        expires_at = _from_numeric_date(exp)
    except (ValueError, OverflowError) as exc:
        raise TokenMalformed("Token claims are out of range.") from exc
    return TokenClaims(subject=subject, role=parsed_role, issued_at=issued_at, expires_at=expires_at)


@lru_cache
def get_token_codec() -> TokenCodec:
    """Return the process-wide TokenCodec built from Settings (loaded once, never mutated)."""
    settings = get_settings()
    return TokenCodec(settings.secret_key, timedelta(seconds=settings.token_expire_seconds))
