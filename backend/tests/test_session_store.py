"""
Session store tests.

Both implementations must honour the same get / set / expire contract.
"""

from datetime import timedelta

import pytest

from backoffice.extensions import db
from backoffice.models import AdminSession
from backoffice.services import session_service
from backoffice.services.session_service import (
    DatabaseSessionStore,
    MemorySessionStore,
    SessionRecord,
    build_session_store,
)
from backoffice.time_utils import utcnow


@pytest.fixture(params=["memory", "database"])
def store(request, db_session):
    return build_session_store(request.param)


def _record(minutes=5, kind="session"):
    return SessionRecord(username="admin", kind=kind, expires_at=utcnow() + timedelta(minutes=minutes))


class TestSessionStoreContract:
    def test_set_then_get(self, store):
        store.set("tok-1", _record())

        record = store.get("tok-1")

        assert record is not None
        assert record.username == "admin"
        assert record.kind == "session"

    def test_unknown_token(self, store):
        assert store.get("missing") is None

    def test_expire_removes(self, store):
        store.set("tok-2", _record())

        store.expire("tok-2")

        assert store.get("tok-2") is None

    def test_expired_record_is_not_returned(self, store):
        store.set("tok-3", _record(minutes=-1))

        assert store.get("tok-3") is None

    def test_purge_and_count(self, store):
        store.set("live", _record())
        store.set("stale-1", _record(minutes=-1))
        store.set("stale-2", _record(minutes=-5, kind="pending_2fa"))

        assert store.purge_expired() == 2
        assert store.count_active() == 1

    def test_temp_secret_round_trips(self, store):
        record = _record(kind="enrolment")
        record.temp_secret = "JBSWY3DPEHPK3PXP"
        store.set("tok-4", record)

        assert store.get("tok-4").temp_secret == "JBSWY3DPEHPK3PXP"


class TestDatabaseStore:
    def test_only_token_hash_is_persisted(self, db_session):
        store = DatabaseSessionStore()
        store.set("plain-token", _record())

        row = db.session.query(AdminSession).one()
        assert row.token_hash == session_service.hash_token("plain-token")
        assert row.token_hash != "plain-token"


class TestIssue:
    def test_validate_session_ignores_pending_tokens(self, app, db_session):
        pending = session_service.issue("admin", "pending_2fa", timedelta(minutes=5))
        full = session_service.issue("admin", "session", timedelta(minutes=60))

        assert session_service.validate_session(pending) is None
        assert session_service.validate_session(full).username == "admin"

    def test_revoke(self, app, db_session):
        token = session_service.issue("admin", "session", timedelta(minutes=60))

        session_service.revoke(token)

        assert session_service.validate_session(token) is None

    def test_unknown_kind(self, app, db_session):
        with pytest.raises(ValueError):
            session_service.issue("admin", "forever", timedelta(minutes=1))

    def test_store_is_built_from_config(self, app, db_session):
        assert isinstance(session_service.get_session_store(), MemorySessionStore)
        with pytest.raises(ValueError):
            build_session_store("redis")
