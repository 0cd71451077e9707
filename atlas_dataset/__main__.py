"""CLI entrypoint for atlas_dataset."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from atlas_dataset.logging_config import setup_logging
from atlas_dataset.models import DatasetKind
from atlas_dataset.store import ENCODINGS


def main() -> None:
    setup_logging()

    parser = argparse.ArgumentParser(prog="atlas-dataset")
    sub = parser.add_subparsers(dest="command", required=True)
    kinds = [k.value for k in DatasetKind]

    build_parser = sub.add_parser("build", help="Build and publish one dataset artifact")
    build_parser.add_argument("kind", choices=kinds)
    build_parser.add_argument("--input", type=Path, default=None,
                              help="Local snapshot directory instead of fetching")
    build_parser.add_argument("--out", type=Path, default=None)
    build_parser.add_argument("--version", default=None)
    build_parser.add_argument("--encoding", choices=ENCODINGS, default=None)
    build_parser.add_argument("--overrides", type=Path, default=None)

    sub.add_parser("serve")

    resolve_parser = sub.add_parser("resolve", help="Resolve a name against a built artifact")
    resolve_parser.add_argument("kind", choices=kinds)
    resolve_parser.add_argument("name")
    resolve_parser.add_argument("--fuzzy", action="store_true")

    letter_parser = sub.add_parser("letter", help="List records starting with a letter")
    letter_parser.add_argument("kind", choices=kinds)
    letter_parser.add_argument("letter")

    args = parser.parse_args()

    if args.command == "build":
        stats = asyncio.run(_build(args))
        print(f"Build completed: {json.dumps(stats)}")
    elif args.command == "serve":
        _serve()
    elif args.command == "resolve":
        _resolve(DatasetKind(args.kind), args.name, args.fuzzy)
    elif args.command == "letter":
        _letter(DatasetKind(args.kind), args.letter)


async def _build(args: argparse.Namespace) -> dict:
    from atlas_dataset.pipeline import run_build

    return await run_build(
        DatasetKind(args.kind),
        input_dir=args.input,
        output_dir=args.out,
        version=args.version,
        encoding=args.encoding,
        overrides_path=args.overrides,
    )


def _serve() -> None:
    import uvicorn

    from atlas_dataset.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "atlas_dataset.api:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=(settings.env == "development"),
        log_level=settings.log_level.lower(),
    )


def _load(kind: DatasetKind):
    from atlas_dataset.config import get_settings
    from atlas_dataset.query import AtlasQueryService
    from atlas_dataset.store import artifact_path

    build = get_settings().build
    return AtlasQueryService.from_file(artifact_path(build.output_dir, build.version, kind))


def _resolve(kind: DatasetKind, name: str, fuzzy: bool) -> None:
    from atlas_dataset.query import ExactMatch

    service = _load(kind)
    result = service.resolve(name, fuzzy=fuzzy)
    if result is None:
        print(f"{name!r}: not found")
        sys.exit(1)

    record = service.get_by_id(result.record_id)
    match = "exact" if isinstance(result, ExactMatch) else "fuzzy (lower confidence)"
    print(f"{name!r} -> {record.id} {record.display_name} [{match}]")
    print(f"   Next letter: {record.last_letter}")


def _letter(kind: DatasetKind, letter: str) -> None:
    service = _load(kind)
    records = service.records_by_first_letter(letter)
    print(f"{len(records)} {kind.value} starting with {letter.lower()!r}")
    for r in records:
        print(f"  {r.id:<10} {r.display_name}")


if __name__ == "__main__":
    main()
