"""Async HTTP client for the Board API."""
from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from board.challenges import PartialWriteError
from board.schemas import Challenge

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8002"
_TIMEOUT = 15.0

# Relational resources served under /api/<name>
TABLES = ("competitors", "research", "tags", "categories", "artists", "sme", "ideas", "invitations")


class BoardAPIError(Exception):
    """Non-2xx response from the Board API."""
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def base_url_from_env() -> str:
    return os.environ.get("BOARD_API_URL", "").strip() or DEFAULT_BASE_URL


class BoardClient:
    """Thin async binding to the Board API.

    Pass ``transport`` (e.g. ``httpx.ASGITransport(app=app)``) to talk to an
    in-process app instead of the network.
    """

    def __init__(self, base_url: str | None = None, *, transport: httpx.AsyncBaseTransport | None = None,
                 timeout: float = _TIMEOUT):
        self._client = httpx.AsyncClient(
            base_url=base_url or base_url_from_env(), transport=transport, timeout=timeout,
        )

    async def __aenter__(self) -> BoardClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = await self._client.request(method, path, **kwargs)
        if resp.status_code == 502:
            body = _json_or_none(resp)
            if isinstance(body, dict) and body.get("partial"):
                raise PartialWriteError(body.get("key", ""), body.get("written", []), body.get("failed", ""))
        if resp.is_error:
            body = _json_or_none(resp)
            detail = body.get("detail") if isinstance(body, dict) else resp.text
            raise BoardAPIError(f"{method} {path} failed ({resp.status_code}): {detail}", resp.status_code)
        return resp.json()

    # -- relational rows ---------------------------------------------------

    async def select(self, table: str, **params: Any) -> list[dict]:
        _check_table(table)
        params = {k: v for k, v in params.items() if v is not None}
        return await self._request("GET", f"/api/{table}", params=params)

    async def insert(self, table: str, row: dict[str, Any]) -> dict:
        _check_table(table)
        return await self._request("POST", f"/api/{table}", json=row)

    async def delete(self, table: str, row_id: int) -> bool:
        _check_table(table)
        try:
            await self._request("DELETE", f"/api/{table}/{row_id}")
        except BoardAPIError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    async def resolve_tag(self, name: str) -> tuple[dict, bool]:
        data = await self._request("POST", "/api/tags/resolve", json={"name": name})
        return data["tag"], data["created"]

    async def set_research_tags(self, research_id: int, tag_ids: list[int]) -> dict:
        return await self._request("PUT", f"/api/research/{research_id}/tags", json={"tag_ids": tag_ids})

    async def competitor_categories(self) -> list[str]:
        return await self._request("GET", "/api/competitors/categories")

    # -- documents ---------------------------------------------------------

    async def list_documents(self, collection: str) -> dict[str, dict]:
        return await self._request("GET", f"/api/documents/{collection}")

    async def get_document(self, collection: str, key: str) -> dict | None:
        try:
            return await self._request("GET", f"/api/documents/{collection}/{key}")
        except BoardAPIError as exc:
            if exc.status_code == 404:
                return None
            raise

    async def set_document(self, collection: str, key: str, data: dict[str, Any]) -> None:
        await self._request("PUT", f"/api/documents/{collection}/{key}", json=data)

    # -- challenges --------------------------------------------------------

    async def list_challenges(self) -> dict[str, Challenge]:
        entries = await self._request("GET", "/api/challenges")
        return {e["key"]: Challenge.model_validate(e["challenge"]) for e in entries}

    async def create_challenge(self) -> tuple[str, Challenge]:
        entry = await self._request("POST", "/api/challenges")
        return entry["key"], Challenge.model_validate(entry["challenge"])

    async def save_challenge(self, key: str, challenge: Challenge) -> None:
        await self._request(
            "PUT", f"/api/challenges/{key}",
            json=challenge.model_dump(by_alias=True, exclude_none=True),
        )

    async def timeline(self, now: str | None = None) -> dict:
        params = {"now": now} if now else {}
        return await self._request("GET", "/api/timeline", params=params)


def _check_table(table: str) -> None:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table}")


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None
