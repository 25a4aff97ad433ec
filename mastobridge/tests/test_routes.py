"""End-to-end tests through the HTTP surface, with the store and Mastodon swapped for doubles."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import ALICE, APP_NAME
from mastobridge import tokens
from mastobridge.errors import GENERIC_MESSAGE, install_error_handlers
from mastobridge.keys import decode_signing_key
from mastobridge.store import AppCredentials

INSTANCE = "https://mastodon.example"


@pytest.fixture
def key(signing_key_pem):
    return decode_signing_key(signing_key_pem)


@pytest.fixture
def registered(store):
    creds = AppCredentials(
        instance="mastodon.example",
        app_id="1",
        name=APP_NAME,
        website="https://bridge.example",
        redirect_uri="https://bridge.example/auth/callback?instance_url=https%3A%2F%2Fmastodon.example",
        client_id="client-1",
        client_secret="secret-1",
        auth_uri="https://mastodon.example/oauth/authorize?client_id=client-1",
    )
    store.apps[creds.instance] = creds
    return creds


def _bearer(key, now=None):
    token = tokens.issue(ALICE["url"], "upstream-at", ALICE["id"], APP_NAME, key, now=now)
    return {"Authorization": f"Bearer {token}"}


def _assert_envelope(response, status, message):
    assert response.status_code == status
    body = response.json()
    assert set(body) == {"error_instance_id", "error_message"}
    assert body["error_instance_id"]
    assert body["error_message"] == message


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "mastobridge"}


def test_jwks(client):
    keys = client.get("/.well-known/jwks.json").json()["keys"]
    assert keys[0]["kty"] == "RSA"
    assert keys[0]["use"] == "sig"


# --- login ---


def test_first_login_registers_once_and_repeats_same_uri(client, store, upstream):
    params = {"username": "alice", "instance_url": INSTANCE}
    first = client.get("/auth/login", params=params)
    assert first.status_code == 200
    authuri = first.json()["authuri"]
    assert authuri.startswith(INSTANCE + "/oauth/authorize?")
    assert "client_id=client-1" in authuri
    assert len(upstream.registrations) == 1
    assert "mastodon.example" in store.apps

    second = client.get("/auth/login", params=params)
    assert second.json() == {"authuri": authuri}
    assert len(upstream.registrations) == 1


def test_login_without_username_is_accepted(client):
    assert client.get("/auth/login", params={"instance_url": INSTANCE}).status_code == 200


def test_login_missing_instance_url(client, upstream):
    response = client.get("/auth/login", params={"username": "alice"})
    _assert_envelope(response, 400, "missing 'instance_url' query param")
    assert upstream.registrations == []


def test_login_malformed_instance_url(client):
    response = client.get("/auth/login", params={"instance_url": "not a url"})
    _assert_envelope(response, 400, "unable to parse instance_url")


def test_login_instance_not_permitted(client, store, upstream):
    store.config["permit_instances"] = "hachyderm.io"
    response = client.get("/auth/login", params={"instance_url": INSTANCE})
    _assert_envelope(response, 400, "instance not in permit list")
    assert upstream.registrations == []


def test_login_store_failure_is_generic_500(client, store):
    store.fail.add("get_config")
    response = client.get("/auth/login", params={"instance_url": INSTANCE})
    _assert_envelope(response, 500, GENERIC_MESSAGE)


def test_login_missing_config_is_generic_500(client, store, upstream):
    del store.config["website"]
    response = client.get("/auth/login", params={"instance_url": INSTANCE})
    _assert_envelope(response, 500, GENERIC_MESSAGE)
    assert upstream.registrations == []


def test_unknown_route_uses_error_envelope(client):
    _assert_envelope(client.get("/api/nope"), 404, "Not Found")


def test_wrong_method_uses_error_envelope(client):
    response = client.post("/auth/login")
    _assert_envelope(response, 405, "Method Not Allowed")
    assert "GET" in response.headers["Allow"]


def test_validation_error_uses_error_envelope():
    app = FastAPI()
    install_error_handlers(app)

    @app.get("/items")
    def items(limit: int):
        return {"limit": limit}

    response = TestClient(app).get("/items", params={"limit": "many"})
    _assert_envelope(response, 422, "invalid request parameters: limit")


def test_login_permit_list_ignores_port(client, store, upstream):
    store.config["permit_instances"] = "mastodon.example"
    response = client.get("/auth/login", params={"instance_url": "https://mastodon.example:8443"})
    assert response.status_code == 200
    assert "mastodon.example:8443" in store.apps
    assert upstream.registrations[0]["instance_url"] == "https://mastodon.example:8443"


def test_error_instance_ids_are_unique(client):
    ids = {client.get("/auth/login").json()["error_instance_id"] for _ in range(3)}
    assert len(ids) == 3


# --- callback ---


def test_callback_issues_verifiable_token(client, store, upstream, key, registered):
    response = client.get("/auth/callback", params={"code": "abc", "instance_url": INSTANCE})
    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "Bearer"

    claims = tokens.verify(body["token"], key.public_key())
    assert claims.subject == ALICE["url"]
    assert claims.user_id == ALICE["id"]
    assert claims.access_token == "upstream-access-token"
    assert claims.issuer == APP_NAME

    assert upstream.calls[0] == ("exchange_code", ("abc", registered.redirect_uri))
    assert upstream.clients[0].client_id == "client-1"
    assert upstream.registrations == []


def test_callback_missing_code(client, registered):
    response = client.get("/auth/callback", params={"instance_url": INSTANCE})
    _assert_envelope(response, 400, "missing 'code' query param")


def test_callback_without_stored_credentials_never_registers(client, upstream):
    response = client.get("/auth/callback", params={"code": "abc", "instance_url": INSTANCE})
    _assert_envelope(response, 500, GENERIC_MESSAGE)
    assert upstream.registrations == []
    assert upstream.calls == []


def test_callback_not_permitted(client, store, upstream, registered):
    store.config["permit_instances"] = "hachyderm.io"
    response = client.get("/auth/callback", params={"code": "abc", "instance_url": INSTANCE})
    _assert_envelope(response, 400, "instance not in permit list")
    assert upstream.calls == []


def test_callback_code_exchange_failure(client, upstream, registered):
    upstream.fail.add("exchange_code")
    response = client.get("/auth/callback", params={"code": "bad", "instance_url": INSTANCE})
    _assert_envelope(response, 500, GENERIC_MESSAGE)


def test_callback_profile_without_url(client, upstream, registered):
    del upstream.profile["url"]
    response = client.get("/auth/callback", params={"code": "abc", "instance_url": INSTANCE})
    _assert_envelope(response, 500, GENERIC_MESSAGE)


def test_callback_without_signing_key(client, store, registered):
    del store.config["jwt_signing_key"]
    response = client.get("/auth/callback", params={"code": "abc", "instance_url": INSTANCE})
    _assert_envelope(response, 500, GENERIC_MESSAGE)


# --- bearer authentication ---


def test_missing_authorization_header(client, upstream, registered):
    response = client.get("/auth/verify")
    _assert_envelope(response, 401, "Authorization header missing")
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert upstream.clients == []


def test_expired_token_makes_no_upstream_call(client, upstream, key, registered):
    headers = _bearer(key, now=datetime.now(timezone.utc) - timedelta(days=8))
    response = client.get("/api/myLists", headers=headers)
    _assert_envelope(response, 401, "token expired")
    assert upstream.clients == []
    assert upstream.calls == []


def test_tampered_token_is_rejected(client, upstream, key, registered):
    token = _bearer(key)["Authorization"].removeprefix("Bearer ")
    header, payload, signature = token.split(".")
    flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
    response = client.get("/api/myLists", headers={"Authorization": f"Bearer {header}.{payload}.{flipped}"})
    assert response.status_code == 401
    assert upstream.calls == []


def test_valid_token_for_instance_without_credentials(client, key):
    response = client.get("/api/myLists", headers=_bearer(key))
    _assert_envelope(response, 500, GENERIC_MESSAGE)


# --- protected endpoints ---


def test_verify_returns_profile_and_last_status(client, upstream, key, registered):
    response = client.get("/auth/verify", headers=_bearer(key))
    assert response.status_code == 200
    body = response.json()
    assert body["account"] == ALICE
    assert body["last_status"]["id"] == "1"
    assert upstream.clients[0].access_token == "upstream-at"
    assert ("account_statuses", (ALICE["id"], 1)) in upstream.calls


def test_verify_upstream_rejection(client, upstream, key, registered):
    upstream.fail.add("me")
    _assert_envelope(client.get("/auth/verify", headers=_bearer(key)), 500, GENERIC_MESSAGE)


def test_my_lists(client, key, registered):
    response = client.get("/api/myLists", headers=_bearer(key))
    assert response.json() == [{"id": "42", "title": "Friends"}]


def test_instance_info(client, key, registered):
    body = client.get("/api/instanceInfo", headers=_bearer(key)).json()
    assert body["instance"]["uri"] == "mastodon.example"
    assert body["activity"][0]["logins"] == "4"


def test_accounts_in_list_without_save(client, store, key, registered):
    response = client.get("/api/accountsInList/42", headers=_bearer(key))
    assert response.status_code == 200
    assert response.json() == {
        "saved": False,
        "public": False,
        "listID": "42",
        "listName": "Friends",
        "ownerID": ALICE["id"],
        "psk": "",
        "accounts": [{"id": "7", "acct": "bob"}, {"id": "8", "acct": "carol"}],
    }
    assert store.writes == []


def test_accounts_in_list_save_private(client, store, key, registered):
    response = client.get("/api/accountsInList/42", params={"save": "true", "public": "false"}, headers=_bearer(key))
    body = response.json()
    assert body["saved"] is True
    assert body["public"] is False
    assert len(body["psk"]) == 32

    assert [op for op, _ in store.writes] == ["put_list_snapshot"]
    saved = store.lists[("mastodon.example", "42")]
    assert saved.psk == body["psk"]
    assert saved.owner_user_id == ALICE["id"]
    assert saved.public is False
    assert store.members[("mastodon.example", "42")].account_ids == ("7", "8")


def test_accounts_in_list_save_public_with_supplied_psk(client, store, key, registered):
    params = {"save": "TRUE", "public": "true", "psk": "shared-secret"}
    body = client.get("/api/accountsInList/42", params=params, headers=_bearer(key)).json()
    assert body["public"] is True
    assert body["psk"] == "shared-secret"
    assert store.lists[("mastodon.example", "42")].public is True


def test_accounts_in_list_unknown_list(client, store, key, registered):
    response = client.get("/api/accountsInList/999", headers=_bearer(key))
    _assert_envelope(response, 400, "no list found (or unable to access) with that id")
    assert store.writes == []


def test_accounts_in_list_save_failure(client, store, key, registered):
    store.fail.add("put_list_snapshot")
    response = client.get("/api/accountsInList/42", params={"save": "true"}, headers=_bearer(key))
    _assert_envelope(response, 500, GENERIC_MESSAGE)
    assert store.lists == {}
    assert store.members == {}


def test_accounts_without_id_are_left_out_of_saved_members(client, store, upstream, key, registered):
    upstream.list_accounts["42"].append({"acct": "ghost"})
    response = client.get("/api/accountsInList/42", params={"save": "true"}, headers=_bearer(key))
    assert response.status_code == 200
    assert len(response.json()["accounts"]) == 3
    assert store.members[("mastodon.example", "42")].account_ids == ("7", "8")


# --- upstream client lifetime ---


def test_protected_request_closes_upstream_client(client, upstream, key, registered):
    assert client.get("/api/myLists", headers=_bearer(key)).status_code == 200
    assert [c.closed for c in upstream.clients] == [True]


def test_failed_protected_request_still_closes_upstream_client(client, upstream, key, registered):
    upstream.fail.add("lists")
    _assert_envelope(client.get("/api/myLists", headers=_bearer(key)), 500, GENERIC_MESSAGE)
    assert [c.closed for c in upstream.clients] == [True]


def test_callback_closes_upstream_client(client, upstream, registered):
    response = client.get("/auth/callback", params={"code": "abc", "instance_url": INSTANCE})
    assert response.status_code == 200
    assert [c.closed for c in upstream.clients] == [True]


def test_failed_code_exchange_closes_upstream_client(client, upstream, registered):
    upstream.fail.add("exchange_code")
    client.get("/auth/callback", params={"code": "bad", "instance_url": INSTANCE})
    assert [c.closed for c in upstream.clients] == [True]
