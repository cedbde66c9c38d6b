from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .logging import get_logger
from .temporary_id import TemporaryIdMap, coerce_temporary_id_map

DOCUMENT_KEYS = frozenset({"version", "generated_at", "entries", "signature"})


def compute_signature(entries: Mapping[str, Any]) -> str:
    canonical = json.dumps(entries, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


@dataclass
class TemporaryIdDocument:
    entries: dict[str, dict[str, Any]]
    version: int = 1
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    signature: str = ""

    @classmethod
    def from_map(cls, id_map: TemporaryIdMap) -> TemporaryIdDocument:
        return cls(entries={key: ref.to_dict() for key, ref in id_map.items()})

    def ensure_signature(self) -> None:
        self.signature = compute_signature(self.entries)

    def to_map(self, default_repo: str = "") -> TemporaryIdMap:
        return coerce_temporary_id_map(self.entries, default_repo)


def persist_temporary_id_document(path: Path, document: TemporaryIdDocument) -> None:
    document.ensure_signature()
    payload = {
        "version": document.version,
        "generated_at": document.generated_at,
        "entries": document.entries,
        "signature": document.signature,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def load_temporary_id_document(path: Path) -> TemporaryIdDocument:
    """Read a persisted map; a plain ``{id: ...}`` object is accepted too.

    Unreadable files and signature mismatches yield an empty document.
    """
    logger = get_logger()
    if not path.exists():
        return TemporaryIdDocument(entries={})
    try:
        raw: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(f"Failed to read temporary ID map {path}", error=str(exc))
        return TemporaryIdDocument(entries={})
    if not isinstance(raw, dict):
        return TemporaryIdDocument(entries={})

    if not (set(raw) & DOCUMENT_KEYS):
        return TemporaryIdDocument(entries={str(k): v for k, v in raw.items()})

    entries_raw = raw.get("entries")
    entries: dict[str, Any] = (
        {str(k): v for k, v in entries_raw.items()} if isinstance(entries_raw, dict) else {}
    )
    doc = TemporaryIdDocument(
        entries=entries,
        version=int(raw.get("version") or 1),
        generated_at=str(raw.get("generated_at") or datetime.now(timezone.utc).isoformat()),
        signature=str(raw.get("signature") or ""),
    )
    if doc.signature and doc.signature != compute_signature(doc.entries):
        logger.warning(f"Temporary ID map signature mismatch detected at {path}; ignoring entries")
        return TemporaryIdDocument(entries={}, version=doc.version)
    return doc


__all__ = [
    "TemporaryIdDocument",
    "compute_signature",
    "load_temporary_id_document",
    "persist_temporary_id_document",
]
