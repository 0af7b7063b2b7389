from time import sleep
from services.blacklist_service import BlacklistService


def test_blacklisted_token_is_reported(cache, redis_double):
    assert BlacklistService.add(cache, "tok1", 60) is True
    assert BlacklistService.is_blacklisted(cache, "tok1") is True
    assert "blacklist:tok1" in redis_double.store


def test_unknown_token_is_not_blacklisted(cache):
    assert BlacklistService.is_blacklisted(cache, "never-added") is False


def test_blacklist_entry_expires(cache):
    BlacklistService.add(cache, "tok1", 1)

    sleep(1.1)

    assert BlacklistService.is_blacklisted(cache, "tok1") is False


def test_lookup_is_idempotent(cache):
    BlacklistService.add(cache, "tok2", 60)

    first = BlacklistService.is_blacklisted(cache, "tok2")
    second = BlacklistService.is_blacklisted(cache, "tok2")
    assert first == second is True

    assert BlacklistService.is_blacklisted(cache, "tok3") == BlacklistService.is_blacklisted(cache, "tok3")


def test_fails_open_without_cache(down_cache):
    assert BlacklistService.add(down_cache, "tok1", 60) is False
    assert BlacklistService.is_blacklisted(down_cache, "tok1") is False
