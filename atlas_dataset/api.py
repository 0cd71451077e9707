"""
FastAPI service exposing the atlas datasets to the game client.

Endpoints (per dataset kind):
  GET /{kind}/by-id/{id}          - One record
  GET /{kind}/by-letter/{letter}  - Records starting with a letter
  GET /{kind}/random-letter       - A letter with at least one record
  GET /{kind}/search              - Name search by canonical substring
  GET /{kind}/resolve             - Alias resolution (exact, optional fuzzy)
  GET /health                     - Manifests of the loaded artifacts
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from atlas_dataset.canonical import is_letter
from atlas_dataset.config import get_settings
from atlas_dataset.errors import ArtifactLoadError
from atlas_dataset.models import (
    DatasetKind,
    HealthResponse,
    LetterListResponse,
    RandomLetterResponse,
    Record,
    RecordSummary,
    ResolveResponse,
    SearchResponse,
)
from atlas_dataset.query import AtlasQueryService, ExactMatch
from atlas_dataset.store import artifact_path

logger = logging.getLogger(__name__)


def load_services(output_dir: Optional[Path] = None, version: Optional[str] = None) -> dict[DatasetKind, AtlasQueryService]:
    """Load every artifact present for the configured version."""
    settings = get_settings().build
    output_dir = output_dir or Path(settings.output_dir)
    version = version or settings.version

    services: dict[DatasetKind, AtlasQueryService] = {}
    for kind in DatasetKind:
        path = artifact_path(output_dir, version, kind)
        if not path.exists():
            logger.warning("No %s artifact at %s; endpoints for it will 404", kind.value, path)
            continue
        services[kind] = AtlasQueryService.from_file(path)
    return services


def _summary(r: Record) -> RecordSummary:
    return RecordSummary(
        id=r.id,
        display_name=r.display_name,
        first_letter=r.first_letter,
        last_letter=r.last_letter,
    )


def _service(request: Request, kind: DatasetKind) -> AtlasQueryService:
    service = request.app.state.services.get(kind)
    if service is None:
        raise HTTPException(status_code=404, detail=f"Dataset {kind.value} is not loaded")
    return service


def create_app(services: Optional[dict[DatasetKind, AtlasQueryService]] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: load artifacts unless they were injected."""
        if services is None:
            logger.info("Loading atlas artifacts...")
            try:
                app.state.services = load_services()
            except ArtifactLoadError as e:
                logger.error("Refusing to serve: %s", e)
                raise
        yield
        logger.info("API server shut down.")

    app = FastAPI(
        title="Atlas Dataset API",
        description="Read-only lookups over the prebuilt atlas datasets",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = dict(services) if services is not None else {}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        return HealthResponse(
            datasets={k.value: s.manifest for k, s in request.app.state.services.items()}
        )

    @app.get("/{kind}/by-id/{record_id}", response_model=Record)
    async def by_id(kind: DatasetKind, record_id: str, request: Request):
        record = _service(request, kind).get_by_id(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Record not found")
        return record

    @app.get("/{kind}/by-letter/{letter}", response_model=LetterListResponse)
    async def by_letter(kind: DatasetKind, letter: str, request: Request):
        service = _service(request, kind)
        if not is_letter(letter.lower()):
            raise HTTPException(status_code=400, detail="Invalid letter. Must be a single letter a-z.")
        records = service.records_by_first_letter(letter)
        return LetterListResponse(
            letter=letter.lower(),
            total=len(records),
            records=[_summary(r) for r in records],
        )

    @app.get("/{kind}/random-letter", response_model=RandomLetterResponse)
    async def random_letter(kind: DatasetKind, request: Request):
        letter = _service(request, kind).random_available_letter()
        if letter is None:
            raise HTTPException(status_code=404, detail="No records available")
        return RandomLetterResponse(letter=letter)

    @app.get("/{kind}/search", response_model=SearchResponse)
    async def search(
        kind: DatasetKind,
        request: Request,
        q: str = Query(..., description="Name or fragment to search for"),
        limit: int = Query(20, ge=1),
    ):
        service = _service(request, kind)
        if len(q.strip()) < 2:
            raise HTTPException(status_code=400, detail="Search query must be at least 2 characters")
        records = service.search(q, limit=limit)
        return SearchResponse(query=q, total=len(records), records=[_summary(r) for r in records])

    @app.get("/{kind}/resolve", response_model=ResolveResponse)
    async def resolve(
        kind: DatasetKind,
        request: Request,
        q: str = Query(..., description="Name as typed by the player"),
        fuzzy: bool = Query(False, description="Allow the substring containment fallback"),
    ):
        service = _service(request, kind)
        result = service.resolve(q, fuzzy=fuzzy)
        if result is None:
            return ResolveResponse(query=q)
        return ResolveResponse(
            query=q,
            id=result.record_id,
            match="exact" if isinstance(result, ExactMatch) else "fuzzy",
            record=service.get_by_id(result.record_id),
        )

    return app


app = create_app()
