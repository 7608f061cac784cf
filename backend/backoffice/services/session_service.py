# Overview: Service-layer operations for admin sessions; pluggable session store behind a small interface.

"""
Admin Session Management

WHY: The login flow needs three short-lived token kinds (enrolment,
pending_2fa, session). They are kept behind the SessionStore interface
(get / set / expire) so the backing store can be swapped without touching
the auth flow:

- MemorySessionStore: process-local dict, for single-process dev and tests.
- DatabaseSessionStore: admin_sessions table, shared by every worker process.

The active store is created by create_app() from SESSION_STORE and lives in
app.extensions["session_store"]; code reaches it through get_session_store().

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- DatabaseSessionStore keeps SHA-256 hashes only
- Expired records are never returned and are dropped on read
"""

from __future__ import annotations

import hashlib
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app

from ..extensions import db
from ..models import AdminSession
from backoffice.time_utils import utcnow


SESSION_KINDS = ("enrolment", "pending_2fa", "session")


@dataclass
class SessionRecord:
    username: str
    kind: str
    expires_at: datetime
    temp_secret: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        expires_at = self.expires_at
        if expires_at.tzinfo is not None:
            # timezone-aware columns (PostgreSQL) come back aware; compare as UTC-naive
            expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
        return expires_at <= (now or utcnow())


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is enough for high-entropy tokens (unlike passwords)."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class SessionStore:
    """Interface for admin session storage."""

    def get(self, token: str) -> SessionRecord | None:
        raise NotImplementedError

    def set(self, token: str, record: SessionRecord) -> None:
        raise NotImplementedError

    def expire(self, token: str) -> None:
        raise NotImplementedError

    def purge_expired(self) -> int:
        raise NotImplementedError

    def count_active(self) -> int:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    def __init__(self):
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> SessionRecord | None:
        with self._lock:
            record = self._records.get(token)
            if record is None:
                return None
            if record.is_expired():
                del self._records[token]
                return None
            return record

    def set(self, token: str, record: SessionRecord) -> None:
        with self._lock:
            self._records[token] = record

    def expire(self, token: str) -> None:
        with self._lock:
            self._records.pop(token, None)

    def purge_expired(self) -> int:
        now = utcnow()
        with self._lock:
            stale = [t for t, r in self._records.items() if r.is_expired(now)]
            for token in stale:
                del self._records[token]
        return len(stale)

    def count_active(self) -> int:
        now = utcnow()
        with self._lock:
            return sum(1 for r in self._records.values() if r.kind == "session" and not r.is_expired(now))


class DatabaseSessionStore(SessionStore):
    def get(self, token: str) -> SessionRecord | None:
        row = db.session.query(AdminSession).filter_by(token_hash=hash_token(token)).first()
        if row is None:
            return None
        record = SessionRecord(
            username=row.username,
            kind=row.kind,
            expires_at=row.expires_at,
            temp_secret=row.temp_secret,
        )
        if record.is_expired():
            db.session.delete(row)
            db.session.commit()
            return None
        return record

    def set(self, token: str, record: SessionRecord) -> None:
        token_hash = hash_token(token)
        row = db.session.query(AdminSession).filter_by(token_hash=token_hash).first()
        if row is None:
            row = AdminSession(token_hash=token_hash)
            db.session.add(row)
        row.username = record.username
        row.kind = record.kind
        row.expires_at = record.expires_at
        row.temp_secret = record.temp_secret
        db.session.commit()

    def expire(self, token: str) -> None:
        db.session.query(AdminSession).filter_by(token_hash=hash_token(token)).delete()
        db.session.commit()

    def purge_expired(self) -> int:
        deleted = db.session.query(AdminSession).filter(AdminSession.expires_at <= utcnow()).delete()
        db.session.commit()
        return deleted

    def count_active(self) -> int:
        return db.session.query(AdminSession).filter(
            AdminSession.kind == "session",
            AdminSession.expires_at > utcnow(),
        ).count()


def build_session_store(kind: str) -> SessionStore:
    if kind == "memory":
        return MemorySessionStore()
    if kind == "database":
        return DatabaseSessionStore()
    raise ValueError(f"Unknown SESSION_STORE: {kind}")


def get_session_store() -> SessionStore:
    return current_app.extensions["session_store"]


def issue(username: str, kind: str, ttl: timedelta, temp_secret: str | None = None) -> str:
    """Create a record of the given kind and return its plaintext token."""
    if kind not in SESSION_KINDS:
        raise ValueError(f"Unknown session kind: {kind}")
    token = generate_token()
    get_session_store().set(
        token,
        SessionRecord(username=username, kind=kind, expires_at=utcnow() + ttl, temp_secret=temp_secret),
    )
    return token


def validate_session(token: str) -> SessionRecord | None:
    """Return the record for a fully authenticated bearer token, else None."""
    record = get_session_store().get(token)
    if record is None or record.kind != "session":
        return None
    return record


def revoke(token: str) -> None:
    get_session_store().expire(token)
