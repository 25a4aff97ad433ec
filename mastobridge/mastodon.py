"""
Mastodon REST client used by the gateway: OAuth code exchange, app registration,
and the read calls behind the protected endpoints.

Every call is single-shot and blocking, with no retry. Transport failures and non-2xx
responses become UpstreamError. Paginated resources are exposed as Paginator objects.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterator, Protocol
from urllib.parse import urlencode

import httpx

from mastobridge.config import UPSTREAM_TIMEOUT, USER_AGENT
from mastobridge.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredApp:
    """What /api/v1/apps hands back, plus the authorization URI built from it."""

    app_id: str
    name: str
    website: str
    redirect_uri: str
    client_id: str
    client_secret: str
    auth_uri: str


class UpstreamClient(Protocol):
    def exchange_code(self, code: str, redirect_uri: str) -> str: ...

    def set_access_token(self, access_token: str | None) -> None: ...

    def me(self) -> dict: ...

    def account_statuses(self, account_id: str, limit: int = 20) -> list[dict]: ...

    def lists(self, list_id: str | None = None) -> list[dict]: ...

    def accounts_in_list(self, list_id: str) -> list[dict]: ...

    def instance(self) -> dict: ...

    def instance_activity(self) -> list[dict]: ...

    def close(self) -> None: ...


def build_authorize_url(instance_url: str, client_id: str, redirect_uri: str, scope: str) -> str:
    """Mastodon /oauth/authorize URL for the authorization-code flow."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
    }
    return f"{instance_url.rstrip('/')}/oauth/authorize?{urlencode(params)}"


def _new_http() -> httpx.Client:
    return httpx.Client(
        timeout=UPSTREAM_TIMEOUT,
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
    )


def _error_summary(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("error_description") or data.get("error") or data)[:200]
    return str(data)[:200]


class Paginator:
    """
    Lazy, restartable sequence of result pages.

    Each iteration starts again from the first page and follows Link rel="next" until
    the instance stops sending one. The producer blocks on network I/O between pages.
    Setting `cancel` stops iteration before the next fetch.
    """

    def __init__(
        self,
        client: "MastodonClient",
        path: str,
        params: dict | None = None,
        cancel: threading.Event | None = None,
    ):
        self.client = client
        self.path = path
        self.params = dict(params or {})
        self.cancel = cancel

    def __iter__(self) -> Iterator[list[dict]]:
        url: str | None = self.client.url(self.path)
        params: dict | None = self.params
        pages = 0
        items = 0
        while url is not None:
            if self.cancel is not None and self.cancel.is_set():
                logger.debug("pagination of %s cancelled after %d pages", self.path, pages)
                return
            response = self.client.request("GET", url, params=params)
            page = response.json()
            pages += 1
            items += len(page)
            yield page
            next_link = response.links.get("next")
            url = next_link.get("url") if next_link else None
            # the next link already carries the query
            params = None
        logger.debug("finished fetching %s: %d items in %d pages", self.path, items, pages)

    def items(self) -> Iterator[dict]:
        for page in self:
            yield from page

    def all(self) -> list[dict]:
        return list(self.items())


class MastodonClient:
    """
    Client for one Mastodon instance.

    client_id/client_secret are needed for the code exchange; access_token for
    everything that acts on behalf of the user. An httpx.Client passed in stays the
    caller's to close; one created here is closed by close() or on leaving `with`.
    """

    def __init__(
        self,
        instance_url: str,
        client_id: str | None = None,
        client_secret: str | None = None,
        access_token: str | None = None,
        http: httpx.Client | None = None,
    ):
        self.instance_url = instance_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.access_token = access_token
        self._owns_http = http is None
        self.http = http or _new_http()

    def __enter__(self) -> "MastodonClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def url(self, path: str) -> str:
        return f"{self.instance_url}{path}"

    def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            response = self.http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(f"{method} {url} failed: {e}", instance=self.instance_url) from e
        if response.status_code >= 400:
            raise UpstreamError(
                f"{method} {url} returned {response.status_code}: {_error_summary(response)}",
                status=response.status_code,
                instance=self.instance_url,
            )
        return response

    def _get(self, path: str, params: dict | None = None) -> Any:
        response = self.request("GET", self.url(path), params=params)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"GET {path} returned invalid JSON", instance=self.instance_url) from e

    def set_access_token(self, access_token: str | None) -> None:
        self.access_token = access_token

    # --- OAuth ---

    def exchange_code(self, code: str, redirect_uri: str) -> str:
        """Trade an authorization code for a user access token."""
        response = self.request(
            "POST",
            self.url("/oauth/token"),
            data={
                "grant_type": "authorization_code",
                "client_id": self.client_id or "",
                "client_secret": self.client_secret or "",
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        try:
            token = response.json().get("access_token")
        except (ValueError, AttributeError) as e:
            raise UpstreamError("token endpoint returned invalid JSON", instance=self.instance_url) from e
        if not token:
            raise UpstreamError("token endpoint returned no access_token", instance=self.instance_url)
        return token

    @classmethod
    def register_app(
        cls,
        instance_url: str,
        client_name: str,
        redirect_uri: str,
        scopes: str,
        website: str,
        http: httpx.Client | None = None,
    ) -> RegisteredApp:
        """Register a new OAuth application on the instance (POST /api/v1/apps)."""
        with cls(instance_url, http=http) as client:
            response = client.request(
                "POST",
                client.url("/api/v1/apps"),
                data={
                    "client_name": client_name,
                    "redirect_uris": redirect_uri,
                    "scopes": scopes,
                    "website": website,
                },
            )
        try:
            data = response.json()
            client_id = data["client_id"]
            client_secret = data["client_secret"]
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamError("app registration returned an unexpected body", instance=instance_url) from e
        logger.info("registered app on %s (client_name=%s)", client.instance_url, client_name)
        return RegisteredApp(
            app_id=str(data.get("id", "")),
            name=data.get("name") or client_name,
            website=data.get("website") or website,
            redirect_uri=data.get("redirect_uri") or redirect_uri,
            client_id=client_id,
            client_secret=client_secret,
            auth_uri=build_authorize_url(client.instance_url, client_id, redirect_uri, scopes),
        )

    # --- accounts ---

    def me(self) -> dict:
        return self._get("/api/v1/accounts/verify_credentials")

    def account(self, account_id: str) -> dict:
        return self._get(f"/api/v1/accounts/{account_id}")

    def account_statuses(self, account_id: str, limit: int = 20) -> list[dict]:
        return self._get(f"/api/v1/accounts/{account_id}/statuses", params={"limit": limit})

    def statuses(self, account_id: str, since_id: str | None = None, cancel: threading.Event | None = None) -> Paginator:
        params = {"since_id": since_id} if since_id else None
        return Paginator(self, f"/api/v1/accounts/{account_id}/statuses", params, cancel)

    def followers(self, account_id: str, cancel: threading.Event | None = None) -> Paginator:
        return Paginator(self, f"/api/v1/accounts/{account_id}/followers", {"limit": 80}, cancel)

    def following(self, account_id: str, cancel: threading.Event | None = None) -> Paginator:
        return Paginator(self, f"/api/v1/accounts/{account_id}/following", {"limit": 80}, cancel)

    def notifications(self, since_id: str | None = None, cancel: threading.Event | None = None) -> Paginator:
        params = {"since_id": since_id} if since_id else None
        return Paginator(self, "/api/v1/notifications", params, cancel)

    # --- lists ---

    def lists(self, list_id: str | None = None) -> list[dict]:
        """All of the user's lists, or just list_id ([] when the instance does not know it)."""
        if list_id is None:
            return self._get("/api/v1/lists")
        try:
            return [self._get(f"/api/v1/lists/{list_id}")]
        except UpstreamError as e:
            if e.status == 404:
                return []
            raise

    def accounts_in_list(self, list_id: str) -> list[dict]:
        return Paginator(self, f"/api/v1/lists/{list_id}/accounts", {"limit": 80}).all()

    # --- instance ---

    def instance(self) -> dict:
        return self._get("/api/v1/instance")

    def instance_activity(self) -> list[dict]:
        """Weekly activity buckets (statuses, logins, registrations)."""
        return self._get("/api/v1/instance/activity")


def get_upstream():
    """Dependency: factory for per-instance clients (also exposes register_app)."""
    return MastodonClient
