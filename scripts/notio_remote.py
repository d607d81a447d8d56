"""Thin wrapper around the Notion REST API.

Every call is paced: after each HTTP request, successful or not, the
client sleeps ``rate_limit_ms``.  Rate limiting (429), server errors and
transport failures are retried with a linear backoff
(``retry_base_ms * attempt``); any other non-2xx answer fails at once.
Failures come back as ``RemoteResult(ok=False, ...)`` instead of being
raised, so one bad row never stops a sync.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

from notio_config import Config, debug_log
from notio_errors import AuthError

API_BASE = "https://api.notion.com/v1"
QUERY_PAGE_SIZE = 100
AUTH_FAILURES = (401, 403)


@dataclass
class RemoteResult:
    ok: bool
    id: Optional[str] = None
    err: Optional[str] = None
    status: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ListResult:
    ok: bool
    rows: List[Dict[str, Any]] = field(default_factory=list)
    err: Optional[str] = None
    status: Optional[int] = None


def _decode(resp: requests.Response) -> Dict[str, Any]:
    if not resp.content:
        return {}
    try:
        obj = resp.json()
    except ValueError:
        return {}
    return obj if isinstance(obj, dict) else {}


def is_retryable(status: Optional[int]) -> bool:
    """No response, rate limited, or a server-side failure."""
    return status is None or status == 429 or status >= 500


class RemoteClient:
    def __init__(
        self,
        token: str,
        version: str = "2022-06-28",
        rate_limit_ms: int = 350,
        timeout_ms: int = 60000,
        retries: int = 2,
        retry_base_ms: int = 500,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        base_url: str = API_BASE,
    ) -> None:
        if not token:
            raise AuthError("notio: token required")
        self.token = token
        self.version = version
        self.rate_limit_ms = rate_limit_ms
        self.timeout = timeout_ms / 1000.0
        self.max_attempts = max(1, retries + 1)
        self.retry_base_ms = retry_base_ms
        self.session = session or requests.Session()
        self.sleep = sleep
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, config: Config, token: str, **kwargs: Any) -> "RemoteClient":
        return cls(
            token,
            version=config.notion_version,
            rate_limit_ms=config.rate_limit_ms,
            timeout_ms=config.timeout_ms,
            retries=config.retries,
            retry_base_ms=config.retry_base_ms,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Notion-Version": self.version,
            "Content-Type": "application/json",
        }

    def _pause(self, ms: float) -> None:
        if ms and ms > 0:
            self.sleep(ms / 1000.0)

    def request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> RemoteResult:
        url = f"{self.base_url}{path}"
        result = RemoteResult(ok=False, err="no response")

        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = self.session.request(
                    method,
                    url,
                    headers=self._headers(),
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as exc:
                result = RemoteResult(ok=False, err=f"no response ({exc.__class__.__name__}: {exc})")
            else:
                obj = _decode(resp)
                if resp.status_code < 300:
                    self._pause(self.rate_limit_ms)
                    return RemoteResult(ok=True, id=obj.get("id"), status=resp.status_code, data=obj)
                message = obj.get("message") or f"HTTP {resp.status_code}"
                result = RemoteResult(ok=False, err=message, status=resp.status_code, data=obj)

            self._pause(self.rate_limit_ms)
            debug_log(f"{method} {path} attempt {attempt}/{self.max_attempts} failed:", result.err)

            if not is_retryable(result.status) or attempt == self.max_attempts:
                break
            self._pause(self.retry_base_ms * attempt)

        return result

    # ---------- diagnostics ----------

    def whoami(self) -> RemoteResult:
        res = self.request("GET", "/users/me")
        if not res.ok:
            return res
        obj = res.data
        owner = (obj.get("bot") or {}).get("owner") or {}
        workspace = owner.get("workspace_name") or ""
        res.data = {"name": obj.get("name") or workspace or "unknown", "workspace": workspace}
        return res

    def describe(self, database_id: str) -> RemoteResult:
        return self.request("GET", f"/databases/{database_id}")

    # ---------- rows ----------

    def list_all(self, database_id: str) -> ListResult:
        """Read every page of a database query, following ``next_cursor``."""
        rows: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            body: Dict[str, Any] = {"page_size": QUERY_PAGE_SIZE}
            if cursor:
                body["start_cursor"] = cursor
            res = self.request("POST", f"/databases/{database_id}/query", body)
            if not res.ok:
                return ListResult(ok=False, rows=rows, err=res.err, status=res.status)
            rows.extend(res.data.get("results") or [])
            cursor = res.data.get("next_cursor")
            if not res.data.get("has_more") or not cursor:
                break
        debug_log(f"fetched {len(rows)} rows from database {database_id}")
        return ListResult(ok=True, rows=rows)

    def create(self, payload: Dict[str, Any]) -> RemoteResult:
        return self.request("POST", "/pages", payload)

    def update(self, page_id: str, payload: Dict[str, Any]) -> RemoteResult:
        res = self.request("PATCH", f"/pages/{page_id}", payload)
        if res.ok and not res.id:
            res.id = page_id
        return res


def database_title(obj: Dict[str, Any]) -> str:
    parts = [frag.get("plain_text", "") for frag in obj.get("title") or []]
    return "".join(parts) or "(untitled)"
