"""
Pipeline orchestrator.
Ties together fetch -> normalize -> alias table + letter index -> assemble
-> write in a single batch run. Called from the CLI or the build script.

The build functions are pure: given the same raw rows and overrides they
produce the same artifact (apart from built_at). Only run_build does I/O,
and it writes nothing unless every stage succeeded.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from atlas_dataset.aliases import build_alias_table, default_override_path, load_override_table
from atlas_dataset.assemble import assemble_artifact
from atlas_dataset.config import get_settings
from atlas_dataset.letter_index import build_letter_index
from atlas_dataset.models import AtlasArtifact, DatasetKind, OverrideTable
from atlas_dataset.normalize import CityNormalizer, CountryNormalizer, NormalizedRecord, NormalizeStats
from atlas_dataset.sources import SNAPSHOT_FILES, SourceClient, load_snapshot
from atlas_dataset.store import artifact_path, write_artifact

logger = logging.getLogger(__name__)


def _build(
    kind: DatasetKind,
    normalized: list[NormalizedRecord],
    stats: NormalizeStats,
    overrides: Optional[OverrideTable],
    version: str,
    sources: Optional[dict[str, str]],
    built_at: Optional[datetime],
) -> AtlasArtifact:
    records = [n.record for n in normalized]
    aliases = build_alias_table(normalized, overrides)
    letter_index = build_letter_index(records)
    return assemble_artifact(
        kind,
        records,
        aliases,
        letter_index,
        version=version,
        sources=sources,
        dropped_records=stats.dropped,
        built_at=built_at,
    )


def build_countries(
    raw_countries: Iterable[dict],
    overrides: Optional[OverrideTable] = None,
    *,
    version: str = "v1",
    sources: Optional[dict[str, str]] = None,
    built_at: Optional[datetime] = None,
) -> AtlasArtifact:
    normalizer = CountryNormalizer()
    normalized = normalizer.normalize_all(raw_countries)
    return _build(DatasetKind.COUNTRIES, normalized, normalizer.stats,
                  overrides, version, sources, built_at)


def build_cities(
    raw_cities: Iterable[dict],
    raw_countries: Iterable[dict],
    overrides: Optional[OverrideTable] = None,
    *,
    version: str = "v1",
    sources: Optional[dict[str, str]] = None,
    built_at: Optional[datetime] = None,
) -> AtlasArtifact:
    normalizer = CityNormalizer(raw_countries)
    normalized = normalizer.normalize_all(raw_cities)
    return _build(DatasetKind.CITIES, normalized, normalizer.stats,
                  overrides, version, sources, built_at)


def build_artifact(
    kind: DatasetKind,
    raw: dict[str, list[dict]],
    overrides: Optional[OverrideTable] = None,
    **kwargs,
) -> AtlasArtifact:
    """Dispatch on kind; raw is keyed by source name as SourceClient.fetch returns it."""
    if kind is DatasetKind.COUNTRIES:
        return build_countries(raw["countries"], overrides, **kwargs)
    return build_cities(raw["cities"], raw["countries"], overrides, **kwargs)


async def run_build(
    kind: DatasetKind,
    *,
    input_dir: Optional[Path] = None,
    output_dir: Optional[Path] = None,
    version: Optional[str] = None,
    encoding: Optional[str] = None,
    overrides_path: Optional[Path] = None,
    client: Optional[SourceClient] = None,
) -> dict:
    """
    Execute the full build:
      1. Fetch: download raw rows (or read a local snapshot)
      2. Build: normalize, alias table, letter index, assemble + verify
      3. Publish: atomically write the artifact file

    Returns a stats dict summarizing the run.
    """
    settings = get_settings().build
    version = version or settings.version
    encoding = encoding or settings.encoding
    output_dir = output_dir or Path(settings.output_dir)
    # Only the default table may be absent; a path the caller named must load
    overrides_required = overrides_path is not None
    overrides_path = overrides_path or default_override_path(kind)
    client = client or SourceClient()

    start_time = time.monotonic()
    try:
        # ── Stage 1: Fetch ─────────────────────────────────────────────
        logger.info("=== Build Stage 1: Fetch %s ===", kind.value)
        if input_dir is not None:
            raw = load_snapshot(input_dir, kind)
            sources = {name: str(input_dir / fn) for name, fn in SNAPSHOT_FILES[kind].items()}
        else:
            raw = await client.fetch(kind)
            sources = client.source_urls(kind)

        # ── Stage 2: Build ─────────────────────────────────────────────
        logger.info("=== Build Stage 2: Normalize + index (version=%s) ===", version)
        if overrides_required or overrides_path.exists():
            overrides = load_override_table(overrides_path, kind)
        else:
            overrides = None
            logger.warning("No override table at %s; building without manual aliases", overrides_path)
        artifact = build_artifact(kind, raw, overrides, version=version, sources=sources)

        # ── Stage 3: Publish ───────────────────────────────────────────
        logger.info("=== Build Stage 3: Publish ===")
        path = write_artifact(artifact, artifact_path(output_dir, version, kind), encoding)
    except Exception as e:
        logger.error("Build of %s failed after %.1fs: %s",
                     kind.value, time.monotonic() - start_time, e, exc_info=True)
        raise

    elapsed = time.monotonic() - start_time
    stats = {
        "kind": kind.value,
        "version": version,
        "path": str(path),
        **artifact.manifest.counts.model_dump(),
        "duration_seconds": round(elapsed, 2),
    }
    logger.info("=== Build complete in %.1fs: %s ===", elapsed, stats)
    return stats

