from middleware.rate_limiter import limiter, get_user_id
from core.config import settings
from starlette.requests import Request


def make_request(headers=None):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("10.0.0.1", 1234),
    }
    return Request(scope)


def test_rate_limiter_disabled_in_testing():
    """Verify rate limiter is disabled during tests."""

    assert settings.ENV == "testing"
    assert limiter.enabled is False


async def test_key_uses_user_id_from_token(user_session):
    request = make_request({"Authorization": f"Bearer {user_session['token']}"})

    assert get_user_id(request).startswith("user:")


def test_key_falls_back_to_client_address():
    assert get_user_id(make_request()) == "10.0.0.1"
    assert get_user_id(make_request({"Authorization": "Bearer garbage"})) == "10.0.0.1"


async def test_can_make_multiple_requests_in_tests(client, registered_user):
    """Verify rate limiting doesn't interfere with tests."""
    # Make 10 login requests (normally limited to 5/min)
    for i in range(10):
        response = await client.post("/auth/login", json={
            "email": registered_user.email,
            "password": "TestPassword123!"
        })
        assert response.status_code == 200
