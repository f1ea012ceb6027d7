from datetime import timedelta

from auth_service.core.tokens import TokenIssuer, utcnow
from auth_service.models.account_provider import AccountProvider, Provider
from auth_service.models.user import User

NATIVE = {"X-Client-Type": "mobile"}
WEB = {"X-Client-Type": "web"}


def _login(client, provider="google", token="google-alice", headers=NATIVE, **extra):
    return client.post("/auth/social-login", json={"provider": provider, "token": token, **extra}, headers=headers)


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_google_login_refresh_logout_scenario(client, db):
    login = _login(client)
    assert login.status_code == 200, login.text
    body = login.json()
    assert body["tokenType"] == "bearer"
    assert body["expiresIn"] == 900
    assert body["user"]["email"] == "alice@example.com"
    assert body["user"]["firstName"] == "Alice"
    assert body["user"]["providers"] == ["google"]
    assert db.query(User).count() == 1
    assert db.query(AccountProvider).count() == 1
    first_refresh = body["refreshToken"]

    refreshed = client.post("/auth/refresh", json={"refreshToken": first_refresh})
    assert refreshed.status_code == 200, refreshed.text
    second_refresh = refreshed.json()["refreshToken"]
    assert second_refresh != first_refresh
    assert refreshed.json()["user"]["id"] == body["user"]["id"]

    reuse = client.post("/auth/refresh", json={"refreshToken": first_refresh})
    assert reuse.status_code == 401
    assert reuse.json()["code"] == "REFRESH_TOKEN_INVALID"

    client.cookies.clear()
    logout = client.post("/auth/logout", json={"refreshToken": second_refresh})
    assert logout.status_code == 200

    after = client.post("/auth/refresh", json={"refreshToken": second_refresh})
    assert after.status_code == 401


def test_second_login_with_same_identity_creates_nothing(client, db):
    first = _login(client).json()
    second = _login(client).json()
    assert first["user"]["id"] == second["user"]["id"]
    assert db.query(User).count() == 1
    assert db.query(AccountProvider).count() == 1


def test_login_with_second_provider_links_account(client, db):
    google = _login(client).json()
    facebook = _login(client, provider="facebook", token="fb-alice").json()
    assert facebook["user"]["id"] == google["user"]["id"]
    assert facebook["user"]["providers"] == ["facebook", "google"]


def test_login_credential_field_aliases(client, registry):
    assert _login(client, token=None, idToken="google-alice").status_code == 200
    assert _login(client, provider="apple", token=None, identityToken="apple-bob").status_code == 200
    assert _login(client, provider="facebook", token=None, accessToken="fb-alice").status_code == 200


def test_apple_hints_are_forwarded_to_verifier(client, registry):
    resp = _login(client, provider="apple", token="apple-bob", email="bob@example.com", firstName="Bob")
    assert resp.status_code == 200

    credential, hints = registry.get(Provider.apple).calls[-1]
    assert credential == "apple-bob"
    assert hints.email == "bob@example.com"
    assert hints.first_name == "Bob"


def test_login_validation_errors_are_400(client):
    assert _login(client, provider="myspace").status_code == 400
    missing = client.post("/auth/social-login", json={"provider": "google"})
    assert missing.status_code == 400
    assert missing.json()["code"] == "VALIDATION_ERROR"


def test_failed_verification_is_generic_401(client):
    resp = _login(client, token="forged")
    assert resp.status_code == 401
    assert resp.json() == {"code": "INVALID_CREDENTIAL", "message": "Provider credential could not be verified."}


def test_web_client_gets_cookie_only(client):
    resp = _login(client, headers=WEB)
    assert resp.status_code == 200
    assert "refreshToken" not in resp.json()
    cookie = resp.headers["set-cookie"]
    assert "HttpOnly" in cookie
    assert "Path=/auth" in cookie

    # the cookie alone is enough to refresh
    refreshed = client.post("/auth/refresh", headers=WEB)
    assert refreshed.status_code == 200, refreshed.text
    assert "refreshToken" not in refreshed.json()


def test_body_token_takes_precedence_over_stale_cookie(client):
    web = _login(client, headers=WEB)
    assert web.status_code == 200
    stale_cookie = client.cookies.get("refreshToken")
    client.post("/auth/refresh", headers=WEB)  # cookie now rotated; jar holds the new one

    native = _login(client, headers=NATIVE).json()
    client.cookies.set("refreshToken", stale_cookie, path="/auth")
    resp = client.post("/auth/refresh", json={"refreshToken": native["refreshToken"]})
    assert resp.status_code == 200, resp.text
    assert "refreshToken" in resp.json()


def test_refresh_failure_clears_cookie(client):
    resp = client.post("/auth/refresh", json={"refreshToken": "nope"})
    assert resp.status_code == 401
    assert "Discard stored tokens" in resp.json()["message"]
    assert "Max-Age=0" in resp.headers["set-cookie"]


def test_refresh_without_any_token_is_401(client):
    assert client.post("/auth/refresh").status_code == 401


def test_logout_is_always_200(client):
    assert client.post("/auth/logout").status_code == 200
    assert client.post("/auth/logout", json={"refreshToken": "unknown"}).status_code == 200
    token = _login(client).json()["refreshToken"]
    assert client.post("/auth/logout", json={"refreshToken": token}).status_code == 200
    assert client.post("/auth/logout", json={"refreshToken": token}).status_code == 200


def test_logout_ignores_unreadable_bodies(client):
    json_header = {"Content-Type": "application/json"}
    assert client.post("/auth/logout", json={"refreshToken": 123}).status_code == 200
    assert client.post("/auth/logout", json=["not", "an", "object"]).status_code == 200
    assert client.post("/auth/logout", content="{not json", headers=json_header).status_code == 200

    # the cookie still logs the session out when the body is junk
    token = _login(client).json()["refreshToken"]
    resp = client.post("/auth/logout", content="{not json", headers=json_header)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Logged out."}

    client.cookies.clear()
    assert client.post("/auth/refresh", json={"refreshToken": token}).status_code == 401


def test_logout_all_revokes_every_session(client):
    sessions = [_login(client).json() for _ in range(3)]
    client.cookies.clear()

    resp = client.post("/auth/logout-all", headers=_bearer(sessions[0]["accessToken"]))
    assert resp.status_code == 200
    assert resp.json() == {"revoked": 3}

    for session in sessions:
        again = client.post("/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert again.status_code == 401


def test_logout_all_requires_authentication(client):
    assert client.post("/auth/logout-all").status_code == 401


def test_me_returns_profile(client):
    login = _login(client).json()
    resp = client.get("/auth/me", headers=_bearer(login["accessToken"]))
    assert resp.status_code == 200
    me = resp.json()
    assert me["id"] == login["user"]["id"]
    assert me["email"] == "alice@example.com"
    assert me["lastName"] == "Smith"


def test_me_auth_failures(client, settings):
    missing = client.get("/auth/me")
    assert missing.status_code == 401
    assert missing.json()["message"] == "No authorization header provided."
    assert missing.headers["www-authenticate"] == "Bearer"

    malformed = client.get("/auth/me", headers={"Authorization": "Token abc"})
    assert malformed.status_code == 401
    assert "Expected: Bearer" in malformed.json()["message"]

    invalid = client.get("/auth/me", headers=_bearer("not.a.jwt"))
    assert invalid.status_code == 401
    assert invalid.json()["message"] == "Invalid or expired access token."


def test_me_with_expired_access_token(client, services):
    login = _login(client).json()
    old = services.issuer.sign_access(login["user"]["id"], "alice@example.com", now=utcnow() - timedelta(minutes=16))
    assert client.get("/auth/me", headers=_bearer(old)).status_code == 401


def test_me_for_deleted_user_is_404(client, settings, services):
    ghost = TokenIssuer(settings, services.ledger).sign_access(424242, "ghost@example.com")
    resp = client.get("/auth/me", headers=_bearer(ghost))
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_root_reports_optional_authentication(client):
    assert client.get("/").json()["authenticated"] is False
    assert client.get("/", headers={"Authorization": "Bearer junk"}).json()["authenticated"] is False
    token = _login(client).json()["accessToken"]
    assert client.get("/", headers=_bearer(token)).json()["authenticated"] is True
