"""
Tests for the source client and the full build run.
HTTP is served by httpx.MockTransport; nothing touches the network.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from atlas_dataset import pipeline
from atlas_dataset.config import SourceConfig
from atlas_dataset.errors import OverrideConfigError, SourceFetchError
from atlas_dataset.models import DatasetKind
from atlas_dataset.pipeline import run_build
from atlas_dataset.query import AtlasQueryService
from atlas_dataset.sources import SourceClient, load_snapshot, read_json_rows
from atlas_dataset.store import artifact_path

from conftest import country_row

COUNTRIES_URL = "https://example.test/countries"
CITIES_URL = "https://example.test/cities"
CITY_COUNTRIES_URL = "https://example.test/city-countries"


def _config(**kwargs) -> SourceConfig:
    defaults = dict(
        countries_url=COUNTRIES_URL,
        cities_url=CITIES_URL,
        city_countries_url=CITY_COUNTRIES_URL,
        request_timeout=5,
        max_retries=2,
        backoff_base=0.0,
    )
    defaults.update(kwargs)
    return SourceConfig(**defaults)


def _client(handler, **kwargs) -> SourceClient:
    return SourceClient(_config(**kwargs), transport=httpx.MockTransport(handler))


class TestSourceClient:
    def test_fetch_countries(self):
        rows = [country_row("ESP", "Spain")]

        def handler(request):
            assert str(request.url) == COUNTRIES_URL
            return httpx.Response(200, json=rows)

        out = asyncio.run(_client(handler).fetch(DatasetKind.COUNTRIES))
        assert out == {"countries": rows}

    def test_fetch_cities_fetches_both(self):
        payloads = {
            CITIES_URL: [{"id": 1, "name": "Oslo", "country_id": 165}],
            CITY_COUNTRIES_URL: [{"id": 165, "name": "Norway", "iso2": "NO"}],
        }

        def handler(request):
            return httpx.Response(200, json=payloads[str(request.url)])

        out = asyncio.run(_client(handler).fetch(DatasetKind.CITIES))
        assert out["cities"] == payloads[CITIES_URL]
        assert out["countries"] == payloads[CITY_COUNTRIES_URL]

    def test_rate_limit_then_success(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return httpx.Response(200, json=[])

        out = asyncio.run(_client(handler).fetch(DatasetKind.COUNTRIES))
        assert out == {"countries": []}
        assert len(calls) == 2

    def test_server_errors_exhaust_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(SourceFetchError, match="HTTP 503"):
            asyncio.run(_client(handler).fetch(DatasetKind.COUNTRIES))
        assert len(calls) == 3

    def test_transport_error_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=[])

        out = asyncio.run(_client(handler).fetch(DatasetKind.COUNTRIES))
        assert out == {"countries": []}

    def test_retry_after_capped_and_no_wait_after_last_attempt(self, monkeypatch):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)

        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "3600"})

        with pytest.raises(SourceFetchError, match="HTTP 429"):
            asyncio.run(_client(handler, max_backoff=1.5).fetch(DatasetKind.COUNTRIES))
        # Three attempts, two waits between them
        assert delays == [1.5, 1.5]

    def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        with pytest.raises(SourceFetchError):
            asyncio.run(_client(handler).fetch(DatasetKind.COUNTRIES))
        assert len(calls) == 1

    def test_non_array_rejected(self):
        def handler(request):
            return httpx.Response(200, json={"message": "maintenance"})

        with pytest.raises(SourceFetchError, match="JSON array"):
            asyncio.run(_client(handler).fetch(DatasetKind.COUNTRIES))

    def test_invalid_json_rejected(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(SourceFetchError, match="invalid JSON"):
            asyncio.run(_client(handler).fetch(DatasetKind.COUNTRIES))


class TestSnapshot:
    def test_load(self, tmp_path):
        (tmp_path / "countries.json").write_text(json.dumps([country_row("ESP", "Spain")]), encoding="utf-8")
        out = load_snapshot(tmp_path, DatasetKind.COUNTRIES)
        assert out["countries"][0]["cca3"] == "ESP"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceFetchError):
            load_snapshot(tmp_path, DatasetKind.CITIES)

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "countries.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(SourceFetchError) as exc:
            read_json_rows(path)
        assert exc.value.url == str(path)

    def test_not_an_array(self, tmp_path):
        path = tmp_path / "cities.json"
        path.write_text('{"cities": []}', encoding="utf-8")
        with pytest.raises(SourceFetchError, match="JSON array"):
            read_json_rows(path)


class TestRunBuild:
    def test_fetch_failure_publishes_nothing(self, tmp_path):
        client = _client(lambda request: httpx.Response(500))
        out_dir = tmp_path / "out"
        with pytest.raises(SourceFetchError):
            asyncio.run(run_build(DatasetKind.COUNTRIES, output_dir=out_dir, version="v1", client=client))
        assert not out_dir.exists()

    def test_explicit_overrides_path_must_exist(self, tmp_path, country_rows):
        snapshot = tmp_path / "snapshot"
        snapshot.mkdir()
        (snapshot / "countries.json").write_text(json.dumps(country_rows), encoding="utf-8")
        out_dir = tmp_path / "out"

        with pytest.raises(OverrideConfigError):
            asyncio.run(run_build(
                DatasetKind.COUNTRIES, input_dir=snapshot, output_dir=out_dir, version="v1",
                overrides_path=tmp_path / "typo-overrides.json",
            ))
        assert not artifact_path(out_dir, "v1", DatasetKind.COUNTRIES).exists()

    def test_missing_default_overrides_still_builds(self, tmp_path, country_rows, monkeypatch):
        snapshot = tmp_path / "snapshot"
        snapshot.mkdir()
        (snapshot / "countries.json").write_text(json.dumps(country_rows), encoding="utf-8")
        monkeypatch.setattr(pipeline, "default_override_path", lambda kind: tmp_path / "absent.json")

        stats = asyncio.run(run_build(
            DatasetKind.COUNTRIES, input_dir=snapshot, output_dir=tmp_path / "out", version="v1",
        ))
        assert stats["overrides_applied"] == 0
        assert artifact_path(tmp_path / "out", "v1", DatasetKind.COUNTRIES).exists()

    def test_fetch_and_publish(self, tmp_path, country_rows):
        client = _client(lambda request: httpx.Response(200, json=country_rows))
        stats = asyncio.run(run_build(
            DatasetKind.COUNTRIES, output_dir=tmp_path, version="v2", encoding="json", client=client,
        ))
        path = artifact_path(tmp_path, "v2", DatasetKind.COUNTRIES)
        assert stats["path"] == str(path)
        assert stats["records"] == 8

        service = AtlasQueryService.from_file(path)
        assert service.manifest.sources == {"countries": COUNTRIES_URL}
        # Shipped override table restores "Burma"
        assert service.resolve_alias("Burma") == "MMR"

    def test_snapshot_build(self, tmp_path):
        snapshot = tmp_path / "snapshot"
        snapshot.mkdir()
        (snapshot / "cities.json").write_text(json.dumps([
            {"id": 1, "name": "Mumbai", "country_id": 101},
            {"id": 2, "name": "Kolkata", "country_id": 101},
        ]), encoding="utf-8")
        (snapshot / "city-countries.json").write_text(json.dumps([
            {"id": 101, "name": "India", "iso2": "IN"},
        ]), encoding="utf-8")

        stats = asyncio.run(run_build(
            DatasetKind.CITIES, input_dir=snapshot, output_dir=tmp_path / "out", version="v1",
        ))
        service = AtlasQueryService.from_file(artifact_path(tmp_path / "out", "v1", DatasetKind.CITIES))
        assert stats["records"] == 2
        assert service.resolve_alias("Bombay") == "1"
        assert service.resolve_alias("Calcutta") == "2"
        assert service.get_by_id("2").attributes.country_code == "IN"
