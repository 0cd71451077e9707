"""
Artifact persistence.

An artifact is one JSON envelope:

    {"format": "atlas-artifact/1", "encoding": "base64" | "json",
     "sha256": "<digest of the compact payload JSON>", "payload": ...}

With base64 encoding the payload is the encoded compact JSON, so the file
carries no readable alias table. Files are written to a temp file and renamed
into place, and a load either returns a verified artifact or raises.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

from pydantic import ValidationError

from atlas_dataset.assemble import verify_artifact
from atlas_dataset.errors import ArtifactIntegrityError, ArtifactLoadError
from atlas_dataset.models import AtlasArtifact, DatasetKind

logger = logging.getLogger(__name__)

ARTIFACT_FORMAT = "atlas-artifact/1"
ENCODINGS = ("base64", "json")


def artifact_path(output_dir: Union[str, Path], version: str, kind: DatasetKind) -> Path:
    return Path(output_dir) / version / f"{kind.value}.atlas.json"


def _payload_bytes(payload: Any) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True).encode("utf-8")


def encode_artifact(artifact: AtlasArtifact, encoding: str = "base64") -> dict:
    if encoding not in ENCODINGS:
        raise ValueError(f"Unknown artifact encoding {encoding!r}; expected one of {ENCODINGS}")
    payload = artifact.model_dump(mode="json")
    raw = _payload_bytes(payload)
    body: Any = base64.b64encode(raw).decode("ascii") if encoding == "base64" else payload
    return {
        "format": ARTIFACT_FORMAT,
        "encoding": encoding,
        "sha256": hashlib.sha256(raw).hexdigest(),
        "payload": body,
    }


def decode_artifact(envelope: Any) -> AtlasArtifact:
    """Check the envelope, the digest, the schema and the invariants."""
    if not isinstance(envelope, dict) or envelope.get("format") != ARTIFACT_FORMAT:
        raise ArtifactLoadError("Not an atlas artifact (missing or unknown format tag)")

    encoding = envelope.get("encoding")
    body = envelope.get("payload")
    try:
        if encoding == "base64":
            raw = base64.b64decode(body, validate=True)
            payload = json.loads(raw)
        elif encoding == "json":
            payload = body
            raw = _payload_bytes(payload)
        else:
            raise ArtifactLoadError(f"Unknown artifact encoding {encoding!r}")
    except (TypeError, ValueError, binascii.Error) as e:
        raise ArtifactLoadError(f"Corrupt artifact payload: {e}") from e

    if hashlib.sha256(raw).hexdigest() != envelope.get("sha256"):
        raise ArtifactLoadError("Artifact checksum mismatch; refusing to load")

    try:
        artifact = AtlasArtifact.model_validate(payload)
        verify_artifact(artifact)
    except (ValidationError, ArtifactIntegrityError) as e:
        raise ArtifactLoadError(f"Artifact failed validation: {e}") from e
    return artifact


def write_artifact(artifact: AtlasArtifact, path: Path, encoding: str = "base64") -> Path:
    """Atomically write the artifact; readers see the old file or the new one."""
    envelope = encode_artifact(artifact, encoding)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(envelope, f)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("Wrote %s artifact %s to %s (%s)",
                artifact.kind.value, artifact.version, path, encoding)
    return path


def read_artifact(path: Path) -> AtlasArtifact:
    try:
        with path.open("r", encoding="utf-8") as f:
            envelope = json.load(f)
    except FileNotFoundError as e:
        raise ArtifactLoadError(f"Artifact not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ArtifactLoadError(f"Cannot read artifact {path}: {e}") from e
    return decode_artifact(envelope)
