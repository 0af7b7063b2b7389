from datetime import timedelta
from models.tokens import TokenRecord, ACCESS, REFRESH
from services.token_service import TokenService, refresh_cache_key
from utils.datetime_utils import utcnow


def test_issue_session_persists_and_mirrors(session, cache, registered_user):
    tokens = TokenService.issue_session(registered_user, session, cache, user_agent="pytest", ip_address="127.0.0.1")

    refresh = session.query(TokenRecord).filter(TokenRecord.kind == REFRESH).one()
    access = session.query(TokenRecord).filter(TokenRecord.kind == ACCESS).one()

    assert refresh.token == tokens["refresh_token"]
    assert refresh.user_id == registered_user.id
    assert refresh.revoked is False
    assert access.token == tokens["token"]
    assert access.user_agent == "pytest"
    assert access.ip_address == "127.0.0.1"
    assert cache.get(refresh_cache_key(registered_user.id)) == tokens["refresh_token"]


def test_issue_session_survives_cache_outage(session, down_cache, registered_user):
    tokens = TokenService.issue_session(registered_user, session, down_cache)

    stored = session.query(TokenRecord).filter(TokenRecord.token == tokens["refresh_token"]).first()
    assert stored is not None


def test_reconcile_match(session, cache, registered_user):
    TokenService.issue_session(registered_user, session, cache)

    report = TokenService.reconcile(session, cache, registered_user.id)

    assert report["match"] is True
    assert report["db_token"]["source"] == "database"
    assert report["cache_token"]["key"] == f"refresh:{registered_user.id}"
    assert report["db_token"]["token"].endswith("...")


def test_reconcile_mismatch(session, cache, registered_user):
    TokenService.issue_session(registered_user, session, cache)
    cache.set(refresh_cache_key(registered_user.id), "some-other-token")

    report = TokenService.reconcile(session, cache, registered_user.id)

    assert report["match"] is False


def test_reconcile_indeterminate_when_one_side_missing(session, cache, down_cache, registered_user):
    TokenService.issue_session(registered_user, session, cache)

    report = TokenService.reconcile(session, down_cache, registered_user.id)
    assert report["db_token"] is not None
    assert report["cache_token"] is None
    assert report["match"] is None

    report = TokenService.reconcile(session, cache, 9999)
    assert report == {"db_token": None, "cache_token": None, "match": None}


def test_revoke_checks_access_then_refresh(session, cache, registered_user):
    tokens = TokenService.issue_session(registered_user, session, cache)

    assert TokenService.revoke(session, tokens["token"]) == ACCESS
    assert TokenService.revoke(session, tokens["refresh_token"]) == REFRESH
    assert TokenService.revoke(session, "unknown-token") is None

    assert session.query(TokenRecord).filter(TokenRecord.revoked == False).count() == 0


def test_revoke_all_user_tokens(session, cache, registered_user):
    TokenService.issue_session(registered_user, session, cache)
    TokenService.issue_session(registered_user, session, cache)

    assert TokenService.revoke_all_user_tokens(registered_user.id, session) == 4


def test_purge_keeps_records_inside_retention_window(session, registered_user):
    now = utcnow()
    session.add_all([
        TokenRecord(user_id=registered_user.id, token="long-gone", kind=REFRESH,
                    expires_at=now - timedelta(days=31)),
        TokenRecord(user_id=registered_user.id, token="recently-expired", kind=REFRESH,
                    expires_at=now - timedelta(days=2)),
        TokenRecord(user_id=registered_user.id, token="live", kind=ACCESS,
                    expires_at=now + timedelta(hours=1)),
    ])
    session.commit()

    assert TokenService.purge_expired_records(session) == 1

    remaining = {record.token for record in session.query(TokenRecord).all()}
    assert remaining == {"recently-expired", "live"}
