# Overview: Service-layer operations for admin auth; encapsulates business logic and database work.

"""
Admin Authentication Service (password + TOTP)

Flow:
1. begin_login(username, password)
   - bcrypt check; wrong username or password -> AuthError("Invalid credentials")
   - first login (no TOTP yet): issue a fresh base32 secret and an
     "enrolment" token (ENROLMENT_TTL_MINUTES) carrying it
   - otherwise: issue a "pending_2fa" token (PENDING_2FA_TTL_MINUTES)
2. verify_2fa_setup(username, code, temp_token) confirms the first code
   against the enrolment secret, stores it on the admin, and returns a
   session token (SESSION_TTL_MINUTES).
3. verify_2fa(username, code, temp_token) checks the code against the stored
   secret and returns a session token.

The temp token is single-use: it is expired as soon as a session is issued.

SECURITY NOTES:
- Passwords hashed with bcrypt (BCRYPT_ROUNDS, default 12)
- TOTP codes accepted within +/- TOTP_VALID_WINDOW time steps
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import bcrypt
import pyotp
from flask import current_app

from ..extensions import db
from ..models import AdminUser
from ..errors import AuthError, ValidationError
from backoffice.time_utils import utcnow
from . import session_service


MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


@dataclass
class LoginChallenge:
    temp_token: str
    needs_setup: bool
    secret: str | None = None
    provisioning_uri: str | None = None

    def to_dict(self) -> dict:
        if self.needs_setup:
            return {
                "success": True,
                "needs2FA": True,
                "secret": self.secret,
                "otpauth_url": self.provisioning_uri,
                "tempToken": self.temp_token,
            }
        return {"success": True, "require2FA": True, "tempToken": self.temp_token}


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Password is validated for strength before hashing."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw() is timing-safe; malformed hashes simply fail."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_admin(username: str, password: str) -> AdminUser:
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")

    existing = db.session.query(AdminUser).filter_by(username=username).first()
    if existing:
        raise ValidationError("Username already exists")

    admin = AdminUser(username=username, password_hash=hash_password(password))
    db.session.add(admin)
    db.session.commit()
    return admin


def _get_active_admin(username: str) -> AdminUser | None:
    if not username:
        return None
    return db.session.query(AdminUser).filter_by(username=username, is_active=True).first()


def _minutes(config_key: str, default: int) -> timedelta:
    return timedelta(minutes=current_app.config.get(config_key, default))


def _verify_code(secret: str, code) -> bool:
    if not secret or code is None:
        return False
    window = current_app.config.get("TOTP_VALID_WINDOW", 2)
    return pyotp.TOTP(secret).verify(str(code).strip(), valid_window=window)


def begin_login(username: str, password: str) -> LoginChallenge:
    admin = _get_active_admin(username)
    if admin is None or not verify_password(password, admin.password_hash):
        raise AuthError("Invalid credentials")

    if not admin.totp_enabled:
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(
            name=admin.username,
            issuer_name=current_app.config.get("TOTP_ISSUER", "Back Office"),
        )
        temp_token = session_service.issue(
            admin.username,
            "enrolment",
            _minutes("ENROLMENT_TTL_MINUTES", 15),
            temp_secret=secret,
        )
        return LoginChallenge(temp_token=temp_token, needs_setup=True, secret=secret, provisioning_uri=uri)

    temp_token = session_service.issue(admin.username, "pending_2fa", _minutes("PENDING_2FA_TTL_MINUTES", 5))
    return LoginChallenge(temp_token=temp_token, needs_setup=False)


def _open_session(admin: AdminUser, temp_token: str) -> str:
    session_service.revoke(temp_token)
    admin.last_login_at = utcnow()
    db.session.commit()
    return session_service.issue(admin.username, "session", _minutes("SESSION_TTL_MINUTES", 60))


def verify_2fa_setup(username: str, code, temp_token: str) -> str:
    store = session_service.get_session_store()
    record = store.get(temp_token) if temp_token else None
    if record is None or record.username != username or record.kind != "enrolment" or not record.temp_secret:
        raise AuthError("Invalid session")

    admin = _get_active_admin(username)
    if admin is None:
        raise AuthError("User not found")

    if not _verify_code(record.temp_secret, code):
        raise AuthError("Invalid code")

    admin.totp_secret = record.temp_secret
    admin.totp_enabled = True
    return _open_session(admin, temp_token)


def verify_2fa(username: str, code, temp_token: str) -> str:
    store = session_service.get_session_store()
    record = store.get(temp_token) if temp_token else None
    if record is None or record.username != username or record.kind != "pending_2fa":
        raise AuthError("Invalid session")

    admin = _get_active_admin(username)
    if admin is None or not admin.totp_secret:
        raise AuthError("User not found")

    if not _verify_code(admin.totp_secret, code):
        raise AuthError("Invalid code")

    return _open_session(admin, temp_token)


def logout(token: str) -> None:
    session_service.revoke(token)


def change_password(username: str, current_password: str, new_password: str) -> None:
    admin = _get_active_admin(username)
    if admin is None:
        raise AuthError("User not found")
    if not verify_password(current_password, admin.password_hash):
        raise AuthError("Current password incorrect")
    admin.password_hash = hash_password(new_password)
    db.session.commit()


def reset_2fa(username: str) -> AdminUser:
    """Clear TOTP enrolment; the next login issues a new secret."""
    admin = db.session.query(AdminUser).filter_by(username=username).first()
    if admin is None:
        raise ValidationError(f"Admin {username} not found")
    admin.totp_secret = None
    admin.totp_enabled = False
    db.session.commit()
    return admin
