"""End-to-end route tests: web and desktop variants against the fake provider and loopback listener."""
import json
from urllib.parse import parse_qs, urlsplit

import pytest

from handoff_web.config import SESSION_COOKIE
from handoff_web.deps import get_password_limiter
from handoff_web.main import app
from handoff_web.rate_limit import SlidingWindowLimiter

DESKTOP = {"state": "st-desk", "code_challenge": "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"}


def _query(location: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(location).query).items()}


def _start(client, **params) -> str:
    r = client.get("/auth/start", params={"provider": "google", **params}, follow_redirects=False)
    assert r.status_code == 302
    return _query(r.headers["location"])["state"]


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "handoff_web"}


def test_home_redirects_to_login(client):
    r = client.get("/", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"


def test_login_page(client):
    r = client.get("/login")
    assert r.status_code == 200
    assert "Welcome back" in r.text
    assert "/auth/start?provider=google" in r.text


def test_login_page_shows_generic_error(client):
    r = client.get("/login", params={"error": "auth_failed"})
    assert "Authentication failed" in r.text
    r = client.get("/login", params={"error": "<script>"})
    assert "Authentication failed" in r.text
    assert "<script>" not in r.text


# --- web variant ---


def test_auth_start_redirects_to_provider(client):
    r = client.get("/auth/start", params={"provider": "github"}, follow_redirects=False)
    assert r.status_code == 302
    location = r.headers["location"]
    assert location.startswith("http://127.0.0.1:54321/auth/v1/authorize?")
    q = _query(location)
    assert q["provider"] == "github"
    assert q["code_challenge_method"] == "S256"
    assert q["redirect_uri"] == "http://127.0.0.1:3000/auth/callback"
    assert q["state"] and q["code_challenge"]


def test_auth_start_unsupported_provider(client):
    r = client.get("/auth/start", params={"provider": "myspace"}, follow_redirects=False)
    assert r.status_code == 400


def test_auth_start_rejects_browser_scheme(client):
    r = client.get(
        "/auth/start",
        params={"provider": "google", "desktop": "true", "deep_link_scheme": "javascript"},
        follow_redirects=False,
    )
    assert r.status_code == 400


def test_web_callback_success_sets_session(client, provider):
    state = _start(client)
    r = client.get("/auth/callback", params={"code": "good-code", "state": state}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/dashboard"
    assert SESSION_COOKIE in r.cookies
    assert provider.requests[0].url.params["grant_type"] == "pkce"

    r = client.get("/dashboard")
    assert r.status_code == 200
    assert "user@example.com" in r.text


def test_web_callback_failure_returns_to_login(client):
    state = _start(client)
    r = client.get("/auth/callback", params={"code": "bad-code", "state": state}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login?error=auth_failed"


def test_callback_unknown_state_makes_no_exchange(client, provider):
    r = client.get("/auth/callback", params={"code": "good-code", "state": "forged"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"
    assert provider.requests == []


def test_callback_state_is_single_use(client):
    state = _start(client)
    client.get("/auth/callback", params={"code": "good-code", "state": state}, follow_redirects=False)
    r = client.get("/auth/callback", params={"code": "good-code", "state": state}, follow_redirects=False)
    assert r.headers["location"] == "/login"


def test_dashboard_requires_session(client):
    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"


def test_logout_clears_session(client):
    state = _start(client)
    client.get("/auth/callback", params={"code": "good-code", "state": state}, follow_redirects=False)
    r = client.post("/logout", follow_redirects=False)
    assert r.headers["location"] == "/login"
    assert client.get("/dashboard", follow_redirects=False).status_code == 302


def test_web_password_sign_in(client):
    r = client.post(
        "/password", data={"email": "user@example.com", "password": "correct-horse"}, follow_redirects=False
    )
    assert r.status_code == 302
    assert r.headers["location"] == "/dashboard"
    assert SESSION_COOKIE in r.cookies


def test_web_password_form_requires_email(client):
    r = client.get("/password", follow_redirects=False)
    assert r.headers["location"] == "/login"


def test_wrong_password_and_unknown_email_look_the_same(client):
    wrong = client.post("/password", data={"email": "user@example.com", "password": "nope"})
    unknown = client.post("/password", data={"email": "ghost@example.com", "password": "correct-horse"})
    assert wrong.status_code == unknown.status_code == 401
    assert "Invalid email or password" in wrong.text
    assert "Invalid email or password" in unknown.text


def test_password_rate_limited(client):
    limiter = SlidingWindowLimiter(1)
    app.dependency_overrides[get_password_limiter] = lambda: limiter
    client.post("/password", data={"email": "user@example.com", "password": "nope"})
    r = client.post("/password", data={"email": "user@example.com", "password": "correct-horse"})
    assert r.status_code == 429
    assert "Too many attempts" in r.text
    assert int(r.headers["retry-after"]) >= 1


# --- desktop via /auth/callback ---


def test_desktop_callback_delivers_deep_link(client):
    state = _start(client, desktop="true", deep_link_scheme="myapp")
    r = client.get(
        "/auth/callback",
        params={"code": "good-code", "state": state, "desktop": "true", "deep_link_scheme": "myapp"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"].startswith("myapp://auth/callback?access_token=AT&refresh_token=RT")
    assert SESSION_COOKIE not in r.cookies


def test_desktop_start_round_trips_flags_through_provider(client):
    r = client.get(
        "/auth/start",
        params={"provider": "google", "desktop": "true", "deep_link_scheme": "myapp"},
        follow_redirects=False,
    )
    redirect_uri = _query(r.headers["location"])["redirect_uri"]
    assert redirect_uri == "http://127.0.0.1:3000/auth/callback?desktop=true&deep_link_scheme=myapp"


def test_desktop_callback_failure_deep_links_error(client):
    state = _start(client, desktop="true", deep_link_scheme="myapp")
    r = client.get("/auth/callback", params={"code": "bad-code", "state": state}, follow_redirects=False)
    assert r.headers["location"] == "myapp://auth/error?message=Authentication%20failed"


def test_desktop_provider_error_deep_links_error(client, provider):
    state = _start(client, desktop="true")
    r = client.get(
        "/auth/callback", params={"error": "access_denied", "state": state}, follow_redirects=False
    )
    assert r.headers["location"] == "mesh://auth/error?message=Authentication%20failed"
    assert provider.requests == []


def test_stored_target_wins_over_callback_flags(client):
    state = _start(client)
    r = client.get(
        "/auth/callback",
        params={"code": "good-code", "state": state, "desktop": "true", "deep_link_scheme": "evil"},
        follow_redirects=False,
    )
    assert r.headers["location"] == "/dashboard"


def test_loopback_callback_posts_and_deep_links(client, loopback):
    state = _start(client, desktop="true", redirect_uri="http://127.0.0.1:5123/callback")
    r = client.get("/auth/callback", params={"code": "good-code", "state": state}, follow_redirects=False)
    assert r.headers["location"].startswith("mesh://auth/callback?access_token=AT&refresh_token=RT")
    assert loopback.posts == [("http://127.0.0.1:5123/login", {"refresh_token": "RT"})]


def test_auth_start_rejects_remote_redirect_target(client):
    r = client.get(
        "/auth/start",
        params={"provider": "google", "redirect_uri": "https://evil.example/steal"},
        follow_redirects=False,
    )
    assert r.status_code == 400


# --- desktop-initiated flow ---


@pytest.mark.parametrize(
    "path",
    ["/auth/desktop", "/auth/desktop/login", "/auth/desktop/password", "/auth/desktop/forgot-password"],
)
def test_desktop_pages_guarded(client, path):
    r = client.get(path, params={"state": "s", "code_challenge": "c"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"


def test_desktop_entry_page_carries_pkce(client):
    r = client.get("/auth/desktop", params={**DESKTOP, "redirect_uri": "mesh://auth/callback"})
    assert r.status_code == 200
    assert 'name="state" value="st-desk"' in r.text
    assert "/auth/desktop/authorize?provider=google" in r.text


def test_desktop_login_with_email_moves_to_password(client):
    r = client.get(
        "/auth/desktop/login",
        params={**DESKTOP, "redirect_uri": "mesh://auth/callback", "email": "user@example.com"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"].startswith("/auth/desktop/password?email=user%40example.com")


def test_desktop_authorize_uses_callers_pkce(client):
    r = client.get(
        "/auth/desktop/authorize",
        params={**DESKTOP, "redirect_uri": "mesh://auth/callback", "provider": "google"},
        follow_redirects=False,
    )
    q = _query(r.headers["location"])
    assert q["state"] == "st-desk"
    assert q["code_challenge"] == DESKTOP["code_challenge"]
    assert q["redirect_uri"] == "mesh://auth/callback"


def test_desktop_password_guard_runs_before_sign_in(client, provider):
    r = client.post(
        "/auth/desktop/password",
        data={"email": "user@example.com", "password": "correct-horse", "state": "s", "redirect_uri": "mesh://x"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == "/login"
    assert provider.requests == []


def test_desktop_password_grant_hands_back_code(client):
    r = client.post(
        "/auth/desktop/password",
        data={
            **DESKTOP,
            "redirect_uri": "mesh://auth/callback",
            "email": "user@example.com",
            "password": "correct-horse",
        },
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == "mesh://auth/callback?code=pw-code&state=st-desk"


def test_desktop_password_wrong_password(client):
    r = client.post(
        "/auth/desktop/password",
        data={**DESKTOP, "redirect_uri": "mesh://auth/callback", "email": "user@example.com", "password": "x"},
    )
    assert r.status_code == 401
    assert "Invalid email or password" in r.text
    assert 'name="state" value="st-desk"' in r.text


def test_desktop_password_loopback(client, loopback):
    r = client.post(
        "/auth/desktop/password",
        data={
            **DESKTOP,
            "redirect_uri": "http://127.0.0.1:5123/callback",
            "email": "user@example.com",
            "password": "correct-horse",
        },
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == "mesh://auth/callback?access_token=AT&refresh_token=RT&state=st-desk"
    assert loopback.posts == [("http://127.0.0.1:5123/login", {"refresh_token": "RT"})]


def test_desktop_password_loopback_refused_still_deep_links(client, loopback):
    loopback.refuse = True
    r = client.post(
        "/auth/desktop/password",
        data={
            **DESKTOP,
            "redirect_uri": "http://localhost:5123/callback",
            "email": "user@example.com",
            "password": "correct-horse",
        },
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"].startswith("mesh://auth/callback?access_token=AT")


def test_forgot_password_sends_reset(client, provider):
    r = client.post(
        "/auth/desktop/forgot-password",
        data={**DESKTOP, "redirect_uri": "mesh://auth/callback", "email": "user@example.com"},
    )
    assert r.status_code == 200
    assert "Check your email" in r.text
    body = json.loads(provider.requests[0].content)
    assert body["redirect_to"].startswith("http://127.0.0.1:3000/auth/desktop/login?state=st-desk")


def test_forgot_password_failure(client, provider):
    provider.recover_status = 500
    r = client.post(
        "/auth/desktop/forgot-password",
        data={**DESKTOP, "redirect_uri": "mesh://auth/callback", "email": "user@example.com"},
    )
    assert r.status_code == 502
    assert "Failed to send reset email" in r.text


def test_desktop_success_page(client):
    r = client.get("/auth/desktop/success")
    assert r.status_code == 200
    assert "Authentication Successful" in r.text


def test_desktop_password_grant_to_web_origin(client, provider):
    r = client.post(
        "/auth/desktop/password",
        data={
            **DESKTOP,
            "redirect_uri": "https://app.example.com/cb",
            "email": "user@example.com",
            "password": "correct-horse",
        },
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == "https://app.example.com/cb?code=pw-code&state=st-desk"
    assert provider.requests[0].url.params["code_challenge"] == DESKTOP["code_challenge"]


def test_desktop_start_round_trips_normalized_scheme(client):
    r = client.get(
        "/auth/start",
        params={"provider": "google", "desktop": "true", "deep_link_scheme": "MyApp"},
        follow_redirects=False,
    )
    redirect_uri = _query(r.headers["location"])["redirect_uri"]
    assert redirect_uri == "http://127.0.0.1:3000/auth/callback?desktop=true&deep_link_scheme=myapp"


# --- web forgot password ---


def test_web_password_page_links_forgot_password(client):
    r = client.get("/password", params={"email": "user@example.com"})
    assert "/forgot-password?email=user%40example.com" in r.text


def test_web_forgot_password_form_requires_email(client):
    r = client.get("/forgot-password", follow_redirects=False)
    assert r.headers["location"] == "/login"


def test_web_forgot_password_sends_reset(client, provider):
    r = client.post("/forgot-password", data={"email": "user@example.com"})
    assert r.status_code == 200
    assert "Check your email" in r.text
    body = json.loads(provider.requests[0].content)
    assert body == {"email": "user@example.com", "redirect_to": "http://127.0.0.1:3000/login?email=user%40example.com"}


def test_web_forgot_password_failure(client, provider):
    provider.recover_status = 500
    r = client.post("/forgot-password", data={"email": "user@example.com"})
    assert r.status_code == 502
    assert "Failed to send reset email" in r.text
    assert 'action="/forgot-password"' in r.text
