from __future__ import annotations

import argparse
from pathlib import Path

from atlas_dataset.aliases import default_override_path, load_override_table
from atlas_dataset.models import DatasetKind
from atlas_dataset.pipeline import build_artifact
from atlas_dataset.sources import read_json_rows
from atlas_dataset.store import artifact_path, write_artifact


def build(kind: DatasetKind, sources: dict[str, Path], out_dir: Path, version: str, encoding: str) -> Path:
    raw = {name: read_json_rows(path) for name, path in sources.items()}
    overrides = load_override_table(default_override_path(kind), kind)
    artifact = build_artifact(
        kind,
        raw,
        overrides,
        version=version,
        sources={name: str(path) for name, path in sources.items()},
    )
    return write_artifact(artifact, artifact_path(out_dir, version, kind), encoding)


def main() -> None:
    parser = argparse.ArgumentParser(description="Build an atlas artifact from local JSON dumps.")
    parser.add_argument("kind", choices=[k.value for k in DatasetKind])
    parser.add_argument("--countries", required=True,
                        help="REST Countries dump, or the city-countries dump for cities")
    parser.add_argument("--cities", default=None)
    parser.add_argument("--out", default="data/atlas")
    parser.add_argument("--version", default="v1")
    parser.add_argument("--encoding", choices=["base64", "json"], default="base64")
    args = parser.parse_args()

    kind = DatasetKind(args.kind)
    sources = {"countries": Path(args.countries)}
    if kind is DatasetKind.CITIES:
        if not args.cities:
            parser.error("--cities is required for the cities dataset")
        sources["cities"] = Path(args.cities)

    path = build(kind, sources, Path(args.out), args.version, args.encoding)
    print(f"Built {kind.value} artifact at {path}")


if __name__ == "__main__":
    main()
