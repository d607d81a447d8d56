"""
Pytest fixtures shared by the notio tests.
"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests

from notio_config import Config
from notio_remote import ListResult, RemoteClient, RemoteResult
from notio_rows import RawRecord


def make_response(status: int, body: Optional[Dict[str, Any]] = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode("utf-8") if body is not None else b""
    return resp


def rich(text: str, code: bool = False) -> Dict[str, Any]:
    return {"rich_text": [{"plain_text": text, "annotations": {"code": code}}]}


def make_page(
    page_id: str,
    name: str = "",
    command: str = "",
    uid: str = "",
    lhs: str = "",
    modes: Optional[List[str]] = None,
    scope: str = "Global",
    type_: str = "",
    prefix: str = "",
    edited: str = "2025-01-01T00:00:00.000Z",
) -> Dict[str, Any]:
    """A database page shaped like the Notion query API returns it."""
    return {
        "id": page_id,
        "last_edited_time": edited,
        "properties": {
            "Name": {"title": [{"plain_text": name}]},
            "Command": rich(command),
            "UID": rich(uid, code=True),
            "Action": rich(lhs, code=True),
            "Mode": {"multi_select": [{"name": m} for m in (modes or [])]},
            "Scope": {"select": {"name": scope} if scope else None},
            "Type": {"select": {"name": type_} if type_ else None},
            "Prefix": {"select": {"name": prefix} if prefix else None},
        },
    }


class FakeNotion:
    """In-memory stand-in for RemoteClient that keeps pages between runs."""

    def __init__(self, pages: Optional[List[Dict[str, Any]]] = None) -> None:
        self.pages: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail_ids: set = set()
        self.fail_creates = False
        self._clock = 0
        for page in pages or []:
            self.pages[page["id"]] = page

    def _tick(self) -> str:
        self._clock += 1
        return f"2025-06-01T00:00:{self._clock:02d}.000Z"

    def list_all(self, database_id: str) -> ListResult:
        self.calls.append(("list", database_id))
        return ListResult(ok=True, rows=list(self.pages.values()))

    def create(self, payload: Dict[str, Any]) -> RemoteResult:
        self.calls.append(("create", payload))
        if self.fail_creates:
            return RemoteResult(ok=False, err="validation_error", status=400)
        page_id = f"page-{len(self.pages) + 1}"
        self.pages[page_id] = {
            "id": page_id,
            "last_edited_time": self._tick(),
            "properties": dict(payload["properties"]),
        }
        return RemoteResult(ok=True, id=page_id, status=200)

    def update(self, page_id: str, payload: Dict[str, Any]) -> RemoteResult:
        self.calls.append(("update", page_id, payload))
        if page_id in self.fail_ids or page_id not in self.pages:
            return RemoteResult(ok=False, err="object_not_found", status=404)
        page = self.pages[page_id]
        page["properties"].update(payload["properties"])
        page["last_edited_time"] = self._tick()
        return RemoteResult(ok=True, id=page_id, status=200)

    def mutations(self) -> List[tuple]:
        return [call for call in self.calls if call[0] in ("create", "update")]


@pytest.fixture
def config():
    return Config(
        database_id="db-123",
        app_page_id="app-456",
        update_only=False,
        project_plugins={"yazi.nvim"},
        rate_limit_ms=0,
    )


@pytest.fixture
def fake_notion():
    return FakeNotion()


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(session, sleeps):
    return RemoteClient(
        "secret-token",
        rate_limit_ms=350,
        retries=1,
        retry_base_ms=500,
        session=session,
        sleep=sleeps.append,
    )


@pytest.fixture
def find_files_records():
    return [
        RawRecord(mode="n", lhs="<Space>pf", description="Find Files"),
        RawRecord(mode="v", lhs="<Space>pf", description="Find Files"),
    ]
