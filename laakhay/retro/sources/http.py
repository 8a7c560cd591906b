"""Generic JSON activity source over HTTP."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from ..core.enums import TaskKind
from ..utils.http import HTTPClient
from .base import Item

logger = logging.getLogger(__name__)


class HTTPActivitySource:
    """ActivitySource backed by a JSON HTTP service.

    Each kind is served from ``GET <base_url>/<kind>`` with ``scope``,
    ``start`` and ``end`` query parameters (ISO 8601). The response is either
    a JSON list or an object holding the list under ``items``. The general
    query hits ``GET <base_url>/activity`` and expects an object keyed by kind.

    Example:
        >>> async with HTTPActivitySource("https://activity.internal/api") as source:
        ...     commits = await source.get_commits("acme/web", start, end)
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: HTTPClient | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        if client is None and base_url is None:
            raise ValueError("HTTPActivitySource needs a base_url or a client")
        self._owns_client = client is None
        self._client = client or HTTPClient(base_url, timeout=timeout, headers=headers)

    @property
    def client(self) -> HTTPClient:
        return self._client

    async def get_commits(self, repository: str, start: date, end: date) -> list[Item]:
        return await self._fetch(TaskKind.COMMITS, repository, start, end)

    async def get_pull_requests(self, repository: str, start: date, end: date) -> list[Item]:
        return await self._fetch(TaskKind.PULL_REQUESTS, repository, start, end)

    async def get_issues(self, team: str, start: date, end: date) -> list[Item]:
        return await self._fetch(TaskKind.ISSUES, team, start, end)

    async def get_channel_messages(self, channel: str, start: date, end: date) -> list[Item]:
        return await self._fetch(TaskKind.MESSAGES, channel, start, end)

    async def get_team_activity(self, start: date, end: date) -> dict[str, list[Item]]:
        data = await self._client.get("activity", params=self._params(None, start, end))
        if not isinstance(data, Mapping):
            raise ValueError(f"Expected an object from activity, got {type(data).__name__}")
        return {str(kind): _as_items(items, str(kind)) for kind, items in data.items()}

    async def close(self) -> None:
        if self._owns_client:
            await self._client.close()

    async def __aenter__(self) -> HTTPActivitySource:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _fetch(self, kind: TaskKind, scope: str, start: date, end: date) -> list[Item]:
        logger.debug(f"Fetching {kind.value} for {scope}")
        data = await self._client.get(kind.value, params=self._params(scope, start, end))
        return _as_items(data, kind.value)

    @staticmethod
    def _params(scope: str | None, start: date, end: date) -> dict[str, str]:
        params = {"start": start.isoformat(), "end": end.isoformat()}
        if scope is not None:
            params["scope"] = scope
        return params


def _as_items(data: Any, kind: str) -> list[Item]:
    if isinstance(data, Mapping):
        data = data.get("items", [])
    if data is None:
        return []
    if isinstance(data, str | bytes) or not isinstance(data, Sequence):
        raise ValueError(f"Expected a list of {kind}, got {type(data).__name__}")
    return [item for item in data if isinstance(item, Mapping)]
