"""
Raw source collaborators.
Fetches the REST Countries and countries-states-cities JSON dumps over HTTP
(with retries and Retry-After handling), or reads the same files from a
local snapshot directory. Any failure is fatal for the build.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from atlas_dataset.config import SourceConfig, get_settings
from atlas_dataset.errors import SourceFetchError
from atlas_dataset.models import DatasetKind

logger = logging.getLogger(__name__)

# Snapshot file names, per dataset kind and source name
SNAPSHOT_FILES: dict[DatasetKind, dict[str, str]] = {
    DatasetKind.COUNTRIES: {"countries": "countries.json"},
    DatasetKind.CITIES: {"cities": "cities.json", "countries": "city-countries.json"},
}


class SourceClient:
    """Async client for the raw JSON dumps."""

    def __init__(
        self,
        config: Optional[SourceConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or get_settings().sources
        self._transport = transport

    def source_urls(self, kind: DatasetKind) -> dict[str, str]:
        if kind is DatasetKind.COUNTRIES:
            return {"countries": self.config.countries_url}
        return {"cities": self.config.cities_url, "countries": self.config.city_countries_url}

    async def _backoff(self, attempt: int, retry_after: Optional[str] = None) -> None:
        if attempt >= self.config.max_retries:
            return  # no retry follows
        delay = self.config.backoff_base ** attempt if self.config.backoff_base else 0.0
        if retry_after is not None:
            try:
                delay = float(retry_after)
            except ValueError:
                pass
        await asyncio.sleep(max(0.0, min(delay, self.config.max_backoff)))

    async def _fetch_json(self, client: httpx.AsyncClient, url: str) -> list[dict]:
        last_error = "no attempts made"
        for attempt in range(self.config.max_retries + 1):
            try:
                resp = await client.get(url, timeout=self.config.request_timeout)
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                last_error = f"HTTP {status}"
                if status == 429:
                    logger.warning("Rate limited fetching %s (attempt %d)", url, attempt + 1)
                    await self._backoff(attempt, e.response.headers.get("Retry-After"))
                    continue
                if status >= 500:
                    logger.warning("HTTP %d fetching %s (attempt %d)", status, url, attempt + 1)
                    await self._backoff(attempt)
                    continue
                raise SourceFetchError(url, last_error) from e
            except httpx.RequestError as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning("Request error fetching %s (attempt %d): %s", url, attempt + 1, e)
                await self._backoff(attempt)
                continue
            except ValueError as e:
                raise SourceFetchError(url, f"invalid JSON: {e}") from e

            if not isinstance(data, list):
                raise SourceFetchError(url, "expected a JSON array")
            logger.info("Fetched %d rows from %s", len(data), url)
            return data

        raise SourceFetchError(url, last_error)

    async def fetch(self, kind: DatasetKind) -> dict[str, list[dict]]:
        """Fetch every source needed for one dataset kind."""
        out: dict[str, list[dict]] = {}
        async with httpx.AsyncClient(transport=self._transport, follow_redirects=True) as client:
            for name, url in self.source_urls(kind).items():
                out[name] = await self._fetch_json(client, url)
        return out


def read_json_rows(path: Path) -> list[dict]:
    """Read one local source dump; failures are fetch failures like HTTP ones."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data: Any = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise SourceFetchError(str(path), str(e)) from e
    if not isinstance(data, list):
        raise SourceFetchError(str(path), "expected a JSON array")
    logger.info("Loaded %d rows from %s", len(data), path)
    return data


def load_snapshot(input_dir: Path, kind: DatasetKind) -> dict[str, list[dict]]:
    """Read previously downloaded source files instead of hitting the network."""
    return {
        name: read_json_rows(input_dir / filename)
        for name, filename in SNAPSHOT_FILES[kind].items()
    }
