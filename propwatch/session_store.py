"""Credential and identity lifecycle for the agency session.

The stored token is decoded locally first so the caller gets an immediate
(PENDING) guess, then confirmed against the profile endpoint. Only the
server-confirmed identity is ever reported as AUTHENTICATED.
"""

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import jwt

from propwatch.errors import AuthError, PropwatchError, ValidationError
from propwatch.models import Identity, Session, SessionStatus
from propwatch.token_store import TokenStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _mask(token: str) -> str:
    return f"{token[:10]}... (length: {len(token)})"


def decode_token(token: str) -> Optional[Dict]:
    """Read the token claims without network access or signature checks."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        logger.warning("Stored token could not be decoded: %s", e)
        return None
    return claims if isinstance(claims, dict) else None


def _expiry(claims: Dict) -> Optional[datetime]:
    exp = claims.get("exp")
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(float(exp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


class SessionStore:
    """Single source of truth for "am I authenticated, and as whom"."""

    def __init__(self, token_store: TokenStore, clock: Callable[[], float] = time.time):
        self.token_store = token_store
        self._clock = clock
        self._lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._session = Session()
        # bumped on every credential change; stale refresh results are dropped
        self._generation = 0

    def snapshot(self) -> Session:
        with self._lock:
            return self._session

    @property
    def status(self) -> SessionStatus:
        return self.snapshot().status

    @property
    def is_authenticated(self) -> bool:
        return self.snapshot().status is SessionStatus.AUTHENTICATED

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_lock.locked()

    def active_token(self) -> Optional[str]:
        """Token to attach to outgoing requests, or None.

        A token whose expiry claim has passed is dropped here and the session
        moves to EXPIRED.
        """
        with self._lock:
            session = self._session
            if session.status not in (SessionStatus.PENDING, SessionStatus.AUTHENTICATED):
                return None
            if session.expires_at is not None and session.expires_at.timestamp() <= self._clock():
                logger.info("Session token expired at %s", session.expires_at.isoformat())
                self._end_locked(SessionStatus.EXPIRED)
                return None
            return session.raw_token

    def restore(self, client) -> Session:
        """Re-establish the session from the persisted token, if any."""
        if not self._refresh_lock.acquire(blocking=False):
            logger.info("Profile refresh already in flight, not starting another")
            return self.snapshot()
        try:
            return self._restore(client)
        finally:
            self._refresh_lock.release()

    def _restore(self, client) -> Session:
        token = self.token_store.load()
        if not token:
            with self._lock:
                self._session = Session()
                return self._session

        claims = decode_token(token)
        expires_at = _expiry(claims) if claims else None
        if claims is None or (expires_at is not None and expires_at.timestamp() <= self._clock()):
            if claims is not None:
                logger.info("Stored token expired at %s, discarding", expires_at.isoformat())
            with self._lock:
                self._end_locked(SessionStatus.UNAUTHENTICATED)
                return self._session

        subject = str(claims.get("sub") or "")
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._session = Session(
                raw_token=token,
                subject_id=subject,
                agency_id=subject,
                agency_name=claims.get("agency_name") or "Agency",
                expires_at=expires_at,
                status=SessionStatus.PENDING,
            )
        logger.debug("Restoring session for token %s", _mask(token))

        try:
            profile = client.fetch_profile()
            if not isinstance(profile, dict):
                raise AuthError("Profile response was not an object")
            subject_id = str(profile.get("id") or "")
            if not subject_id:
                raise AuthError("Profile response did not include an id")
        except PropwatchError as e:
            logger.warning("Failed to fetch user details: %s", e)
            with self._lock:
                if self._is_current_locked(token, generation):
                    self._end_locked(SessionStatus.UNAUTHENTICATED)
                return self._session

        with self._lock:
            if not self._is_current_locked(token, generation):
                logger.info("Session changed during profile refresh, discarding result")
                return self._session
            self._session = replace(
                self._session,
                subject_id=subject_id,
                agency_id=subject_id,
                agency_name=profile.get("name") or self._session.agency_name,
                status=SessionStatus.AUTHENTICATED,
            )
            logger.info("Session restored for agency %s", self._session.agency_name)
            return self._session

    def login(self, token: str, identity: Identity) -> Session:
        if not token or not identity.subject_id:
            raise ValidationError("Login response did not include a token and subject id")
        claims = decode_token(token) if token.count(".") == 2 else None
        self.token_store.save(token)
        with self._lock:
            self._generation += 1
            self._session = Session(
                raw_token=token,
                subject_id=identity.subject_id,
                agency_id=identity.agency_id,
                agency_name=identity.agency_name,
                expires_at=_expiry(claims) if claims else None,
                status=SessionStatus.AUTHENTICATED,
            )
            logger.info("Logged in as %s", identity.agency_name)
            return self._session

    def logout(self, client=None) -> Session:
        if client is not None and self.active_token():
            try:
                client.logout()
            except PropwatchError as e:
                logger.warning("Logout failed on server: %s", e)
        with self._lock:
            self._end_locked(SessionStatus.UNAUTHENTICATED)
            return self._session

    def invalidate(self, token: str) -> bool:
        """Drop credentials the server rejected, if they are still the current ones."""
        with self._lock:
            if not token or self._session.raw_token != token:
                return False
            status = SessionStatus.UNAUTHENTICATED
            if self._session.status is SessionStatus.AUTHENTICATED:
                status = SessionStatus.EXPIRED
            logger.warning("Token %s rejected by server, ending session", _mask(token))
            self._end_locked(status)
            return True

    def _is_current_locked(self, token: str, generation: int) -> bool:
        return (
            generation == self._generation
            and self._session.raw_token == token
            and self._session.status in (SessionStatus.PENDING, SessionStatus.AUTHENTICATED)
        )

    def _end_locked(self, status: SessionStatus):
        self._generation += 1
        self.token_store.clear()
        self._session = Session(status=status)


def sign_in(client, session: SessionStore, username: str, password: str) -> Session:
    """Log in with agency credentials; the response already carries the identity."""
    if not username or not password:
        raise ValidationError("Username and password are required")
    data = client.login(username, password)
    agency_id = str(data.get("agency_id") or "")
    identity = Identity(subject_id=agency_id, agency_id=agency_id, agency_name=data.get("agency_name") or "")
    return session.login(data.get("access_token") or "", identity)


def sign_up(client, name: str, username: str, password: str) -> Dict:
    missing = [label for label, value in (("Agency Name", name), ("Username", username), ("Password", password)) if not value]
    if missing:
        raise ValidationError(f"Please fill in: {', '.join(missing)}", missing)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return client.signup(name, username, password)
