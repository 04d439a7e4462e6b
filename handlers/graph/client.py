# ================================================================
# File     : client.py
# Purpose  : Microsoft Graph API read-only client for Entra (Azure AD)
# Notes    : Read-only: GET + pagination + retries. No destructive ops.
#            - App-only token via MSAL client credentials
#            - Proactive refresh if token expires in <5 minutes
#            - One refresh-and-retry on 401, Retry-After sleep on 429
# ================================================================

import os
import time
import getpass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Any, List, Optional

import msal
import requests

from core.utils import fncPrintMessage, fncRetry, fncMask

GRAPH_ROOT = "https://graph.microsoft.com/v1.0"
DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
MAX_THROTTLE_WAITS = 5
DEFAULT_RETRY_AFTER = 5


class GraphRequestError(Exception):
    """Non-success response from Microsoft Graph."""

    def __init__(self, status: int, url: str, body: str = ""):
        self.status = status
        self.url = url
        self.body = body
        super().__init__(f"Graph API request failed with status {status}: {body[:300]}")


# Retry-After is either delta-seconds or an HTTP date
def _retry_after(value: Optional[str]) -> int:
    if value is None:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0, int(str(value).strip()))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(str(value))
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))


class GraphClient:
    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        authority: Optional[str] = None,
        timeout: int = 60,
    ):
        tenant_id = tenant_id or os.getenv("ROLECALL_TENANT_ID")
        client_id = client_id or os.getenv("ROLECALL_CLIENT_ID")
        client_secret = client_secret or os.getenv("ROLECALL_CLIENT_SECRET")

        # Prompt interactively if any credential is missing
        if not tenant_id:
            tenant_id = input("Enter Tenant ID: ").strip()
        if not client_id:
            client_id = input("Enter Application (Client) ID: ").strip()
        if not client_secret:
            fncPrintMessage("No Client Secret found. It is kept in memory for this session only.", "warn")
            client_secret = getpass.getpass("Enter Client Secret (input hidden): ").strip()

        self.tenant_id = tenant_id
        self.client_id = client_id
        self.timeout = timeout
        self.scope = ["https://graph.microsoft.com/.default"]
        self.authority = f"{(authority or DEFAULT_AUTHORITY).rstrip('/')}/{tenant_id}"

        fncPrintMessage(f"Initialising Microsoft Graph (read-only) client for app {fncMask(client_id)}...", "info")

        self.app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=self.authority,
        )
        self.session = requests.Session()

        self.token: str = ""
        self._token_expires_on: int = 0  # epoch seconds
        self._set_token(self._acquire_token())

        fncPrintMessage("GraphClient initialised (read-only).", "success")

    # ---------- Token helpers ----------

    def _acquire_token(self) -> Dict[str, Any]:
        """Acquire a token using MSAL (cache first, then client credentials)."""
        fncPrintMessage("Requesting Microsoft Graph access token...", "debug")
        result = self.app.acquire_token_silent(self.scope, account=None)
        if not result:
            result = self.app.acquire_token_for_client(scopes=self.scope)
        if "access_token" not in result:
            fncPrintMessage(
                f"MSAL Authentication failed: {result.get('error_description', 'Unknown error')}",
                "error",
            )
            raise RuntimeError("Failed to acquire access token")
        return result

    def _set_token(self, msal_result: Dict[str, Any]) -> None:
        self.token = msal_result["access_token"]
        try:
            self._token_expires_on = int(msal_result.get("expires_on") or 0)
        except (TypeError, ValueError):
            self._token_expires_on = 0
        if not self._token_expires_on:
            self._token_expires_on = int(time.time()) + int(msal_result.get("expires_in", 3600))

    def _ensure_fresh_token(self) -> None:
        if int(time.time()) >= (self._token_expires_on - 300):
            fncPrintMessage("Refreshing access token (nearing expiry)...", "debug")
            self._set_token(self._acquire_token())

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "ConsistencyLevel": "eventual",
        }

    # ---------- HTTP handling ----------

    def _request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Single logical request: handles throttling and one token refresh."""
        self._ensure_fresh_token()
        refreshed = False
        throttled = 0

        while True:
            resp = self.session.request(method, url, headers=self._auth_headers(), params=params, timeout=self.timeout)
            status = resp.status_code

            if status == 200:
                return resp.json()

            if status == 429 and throttled < MAX_THROTTLE_WAITS:
                throttled += 1
                retry_after = _retry_after(resp.headers.get("Retry-After"))
                fncPrintMessage(f"Rate limit hit. Sleeping for {retry_after}s...", "warn")
                time.sleep(retry_after)
                continue

            if status == 401 and not refreshed:
                code = ""
                try:
                    code = ((resp.json() or {}).get("error") or {}).get("code") or ""
                except ValueError:
                    pass
                if "InvalidAuthenticationToken" in code or "expired" in resp.text.lower():
                    fncPrintMessage("Access token expired, attempting refresh.", "warn")
                    self._set_token(self._acquire_token())
                    refreshed = True
                    continue

            fncPrintMessage(f"Graph API Error [{status}] -> {resp.text[:300]}", "debug")
            raise GraphRequestError(status, url, resp.text)

    # ---------- Public API ----------

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Single GET against a Graph endpoint. Use get_all for collections."""
        url = f"{GRAPH_ROOT}/{endpoint.strip().lstrip('/')}"
        fncPrintMessage(f"GET {url}", "debug")
        return fncRetry(lambda: self._request("GET", url, params=params), exceptions=(requests.RequestException,))

    def get_all(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Retrieve every item from a paginated Graph endpoint by following
        @odata.nextLink until exhausted. Returns the flattened 'value' items.
        Example: client.get_all("users?$select=id,displayName")
        """
        url = f"{GRAPH_ROOT}/{endpoint.strip().lstrip('/')}"
        fncPrintMessage(f"GET (all pages) {url}", "debug")

        data = fncRetry(lambda: self._request("GET", url, params=params), exceptions=(requests.RequestException,))
        if not isinstance(data, dict):
            return []
        if "value" not in data:
            return [data]

        items: List[Dict[str, Any]] = list(data.get("value") or [])
        next_link = data.get("@odata.nextLink")
        while next_link:
            fncPrintMessage(f"Following nextLink -> {next_link}", "debug")
            link = next_link
            page = fncRetry(lambda: self._request("GET", link), exceptions=(requests.RequestException,))
            items.extend(page.get("value") or [])
            next_link = page.get("@odata.nextLink")

        return items
