from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class AdminUser(db.Model):
    """
    Back office administrator.

    Login is two-step: bcrypt password check, then a TOTP code. totp_secret
    is set (and totp_enabled flipped) only after the first code generated
    from a freshly issued secret verifies.
    """
    __tablename__ = "admin_users"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    totp_secret = db.Column(db.String(64), nullable=True)
    totp_enabled = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "totp_enabled": self.totp_enabled,
            "is_active": self.is_active,
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class AdminSession(db.Model):
    """
    Persistent backing table for DatabaseSessionStore.

    Tokens are stored as SHA-256 hashes; the plaintext token only ever
    exists on the client.

    KINDS:
    - enrolment: password verified, TOTP secret issued but not yet confirmed
    - pending_2fa: password verified, waiting for the TOTP code
    - session: fully authenticated bearer token
    """
    __tablename__ = "admin_sessions"
    __table_args__ = (
        db.Index("ix_admin_sessions_expires", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    username = db.Column(db.String(100), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)
    temp_secret = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
