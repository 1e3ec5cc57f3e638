"""
auth/session.py -- Credential checks and bearer token resolution.

SessionAuthenticator is the only place that turns a username/password pair or
a bearer string into a User. It combines the credential store (UserStore) with
the token codec (TokenCodec) and enforces the login contract:

  - Unknown username and wrong password raise the SAME InvalidCredentials
    error, and cost the same bcrypt work [C1]. An attacker cannot enumerate
    usernames by message or by response time.
  - A disabled account raises AccountDisabled internally. The HTTP layer
    reports it with the same body as InvalidCredentials; the distinction
    exists for server-side logs only.
  - The password is checked BEFORE the enabled flag, so AccountDisabled is
    only ever raised to a caller who already proved the password.

Nothing here logs passwords, hashes, or tokens.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import logging

from auth.models import User
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.store import UserStore
from auth.tokens import IssuedToken, TokenClaims, TokenCodec
from core.errors import AccountDisabled, InvalidCredentials, InvalidOperation

logger = logging.getLogger("nexus.auth")


class SessionAuthenticator:
    """Authenticates credential pairs and bearer tokens against a UserStore.

    Usage:
        authenticator = SessionAuthenticator(user_store, get_token_codec())
        token, user = authenticator.login("alice", "s3cret-pass")
        user = authenticator.resolve(token.raw)
    """

    def __init__(self, store: UserStore, codec: TokenCodec) -> None:
        self.store = store
        self.codec = codec

    def login(self, username: str, password: str) -> tuple[IssuedToken, User]:
        """Check credentials and issue a token. Returns (token, user snapshot)."""
        user = self.store.get_by_username(username)
        if user is None or not user.hashed_password:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            verify_password(password, DUMMY_HASH)
            logger.info("Login rejected: unknown username")
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            logger.info("Login rejected: bad password for user_id=%s", user.id)
            raise InvalidCredentials()
        if not user.is_active:
            logger.info("Login rejected: account disabled for user_id=%s", user.id)
            raise AccountDisabled()

        token = self.codec.issue(user.username, user.role)
        self.store.update_last_login(user.id)
        logger.info("Login succeeded for user_id=%s role=%s", user.id, user.role.value)
        return token, user

    def resolve(self, raw: str) -> User:
        """Verify a bearer token and load its subject.

        Raises the codec's TokenError subclasses unchanged. A token whose
        subject no longer exists raises InvalidCredentials; one whose subject
        has been disabled raises AccountDisabled. The returned User is the
        current store record, so role changes take effect immediately rather
        than at token expiry.
        """
        return self.inspect(raw)[1]

    def inspect(self, raw: str) -> tuple[TokenClaims, User]:
        """Like resolve(), but also return the verified claims (for /auth/validate)."""
        claims = self.codec.verify(raw)
        return claims, self._load_subject(claims.subject)

    def refresh(self, raw: str) -> tuple[IssuedToken, User]:
        """Exchange a valid, non-expired token for a new one.

        Expired tokens raise TokenExpired: this system has no sliding expiry,
        so the client must log in again. The new token carries the user's
        current role, not the role claimed by the old token.
        """
        user = self.resolve(raw)
        return self.codec.refresh(raw, role=user.role), user

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """Replace user's password after confirming the current one.

        The read (hash check) and the write are issued back to back; making the
        pair atomic against a concurrent change is the store's concern.
        """
        stored = self.store.get_by_id(user.id)
        if stored is None or not stored.hashed_password:
            raise InvalidCredentials()
        if not verify_password(current_password, stored.hashed_password):
            raise InvalidOperation("Current password is incorrect.")
        self.store.update_user(user.id, hashed_password=hash_password(new_password))
        logger.info("Password changed for user_id=%s", user.id)

    def _load_subject(self, username: str) -> User:
        user = self.store.get_by_username(username)
        if user is None:
            logger.info("Token subject no longer exists")
            raise InvalidCredentials()
        if not user.is_active:
            logger.info("Token rejected: account disabled for user_id=%s", user.id)
            raise AccountDisabled()
        return user
