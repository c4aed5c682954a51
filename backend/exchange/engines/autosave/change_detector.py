from __future__ import annotations

import hashlib
import json
from typing import Any


def persistable_view(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Only sections and progress count as a change; ids and metadata do not."""
    return {
        "sections": snapshot.get("sections") or {},
        "progress": snapshot.get("progress") or {},
    }


def stable_serialize(snapshot: dict[str, Any]) -> str:
    return json.dumps(
        persistable_view(snapshot),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def snapshot_hash(snapshot: dict[str, Any]) -> str:
    return hashlib.sha256(stable_serialize(snapshot).encode("utf-8")).hexdigest()


class ChangeDetector:
    """Tracks whether the live snapshot differs from the last confirmed write."""

    def __init__(self, last_persisted_hash: str | None = None):
        self.last_persisted_hash = last_persisted_hash
        self.dirty = False

    def is_dirty(self, snapshot: dict[str, Any]) -> bool:
        return snapshot_hash(snapshot) != self.last_persisted_hash

    def check(self, snapshot: dict[str, Any]) -> bool:
        self.dirty = self.is_dirty(snapshot)
        return self.dirty

    def mark_persisted(self, snapshot: dict[str, Any]) -> str:
        self.last_persisted_hash = snapshot_hash(snapshot)
        self.dirty = False
        return self.last_persisted_hash

    def reset(self) -> None:
        self.last_persisted_hash = None
        self.dirty = False
