from __future__ import annotations

import json
import secrets
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Protocol

from flask import session

from app.crm.identity import ExternalIdentity

OAUTH_STATE_KEY = "oauth_state"


class OAuthError(RuntimeError):
    pass


class IdentityProvider(Protocol):
    def authorize_url(self, *, redirect_uri: str, state: str) -> str: ...

    def fetch_identity(self, *, code: str, redirect_uri: str) -> ExternalIdentity: ...


@dataclass(frozen=True)
class FacebookClient:
    app_id: str
    app_secret: str
    graph_version: str = "v19.0"
    dialog_base_url: str = "https://www.facebook.com"
    graph_base_url: str = "https://graph.facebook.com"
    timeout_seconds: int = 15

    def authorize_url(self, *, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.app_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": "email",
            "response_type": "code",
        }
        return f"{self.dialog_base_url}/{self.graph_version}/dialog/oauth?" + urllib.parse.urlencode(params)

    def request_json(self, path: str, *, params: dict[str, Any] | None = None, retries: int = 2) -> dict[str, Any]:
        url = f"{self.graph_base_url.rstrip('/')}/{self.graph_version}{path}"
        if params:
            url += "?" + urllib.parse.urlencode({k: v for k, v in params.items() if v is not None})

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, method="GET")
                req.add_header("Accept", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    try:
                        return json.loads(raw.decode("utf-8"))
                    except ValueError as e:
                        raise OAuthError(f"Invalid JSON from Graph API ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code >= 500 or e.code == 429:
                    last_err = e
                    time.sleep(min(1 * (attempt + 1), 3))
                    continue
                try:
                    body = e.read().decode("utf-8", errors="ignore")
                except Exception:
                    body = ""
                raise OAuthError(f"HTTP {e.code} from Graph API ({path}): {body[:300]}") from e
            except urllib.error.URLError as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 3))
                continue
        raise OAuthError(f"Graph API request failed after retries: {last_err}")

    def exchange_code(self, *, code: str, redirect_uri: str) -> str:
        j = self.request_json(
            "/oauth/access_token",
            params={
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        token = j.get("access_token")
        if not token:
            raise OAuthError("Graph API returned no access_token")
        return str(token)

    def fetch_identity(self, *, code: str, redirect_uri: str) -> ExternalIdentity:
        access_token = self.exchange_code(code=code, redirect_uri=redirect_uri)
        profile = self.request_json(
            "/me",
            params={"fields": "id,name,email,picture.type(large)", "access_token": access_token},
        )
        return identity_from_profile(profile)


def identity_from_profile(profile: dict[str, Any]) -> ExternalIdentity:
    external_id = str(profile.get("id") or "").strip()
    if not external_id:
        raise OAuthError("Graph API profile has no id")
    picture = profile.get("picture")
    picture_url = None
    if isinstance(picture, dict):
        picture_url = (picture.get("data") or {}).get("url")
    return ExternalIdentity(
        email=profile.get("email"),
        external_id=external_id,
        display_name=profile.get("name"),
        picture_url=picture_url,
    )


def issue_state() -> str:
    """Random anti-forgery state, remembered in the signed session."""
    state = secrets.token_urlsafe(24)
    session[OAUTH_STATE_KEY] = state
    return state


def check_state(received: str | None) -> bool:
    expected = session.pop(OAUTH_STATE_KEY, None)
    return bool(received and expected and secrets.compare_digest(str(received), str(expected)))
