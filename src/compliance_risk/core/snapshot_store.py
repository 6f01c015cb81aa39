from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from compliance_risk.core.assessment_types import RiskAssessment
from compliance_risk.core.errors import StoreError
from compliance_risk.core.serialization import assessment_from_dict, assessment_to_dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval [start, end); either bound may be left open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        for bound in (self.start, self.end):
            if bound is not None and bound.tzinfo is None:
                raise ValueError("TimeRange bounds must be timezone-aware")
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("TimeRange start is after end")

    def contains(self, ts: datetime) -> bool:
        if self.start is not None and ts < self.start:
            return False
        if self.end is not None and ts >= self.end:
            return False
        return True


@dataclass(frozen=True)
class SnapshotRecord:
    seq: int
    assessment: RiskAssessment
    audit: Dict[str, Any] = field(default_factory=dict)


class SnapshotStore(Protocol):
    async def append(
        self,
        entity_id: str,
        assessment: RiskAssessment,
        audit: Optional[Dict[str, Any]] = None,
    ) -> None:
        raise NotImplementedError

    async def history(
        self,
        entity_id: str,
        time_range: Optional[TimeRange] = None,
    ) -> List[RiskAssessment]:
        raise NotImplementedError


def _check_entity(entity_id: str, assessment: RiskAssessment) -> None:
    if assessment.entity_id != entity_id:
        raise ValueError(
            f"Assessment belongs to '{assessment.entity_id}', not '{entity_id}'"
        )


def _ordered(records: List[SnapshotRecord], time_range: Optional[TimeRange]) -> List[RiskAssessment]:
    selected = [r for r in records if time_range is None or time_range.contains(r.assessment.timestamp)]
    selected.sort(key=lambda r: (r.assessment.timestamp, r.seq))
    return [r.assessment for r in selected]


class _LoopLock:
    """An asyncio.Lock per running event loop; a store may outlive the loop it was built in."""

    def __init__(self) -> None:
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock: Optional[asyncio.Lock] = None

    def get(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not loop:
            self._loop = loop
            self._lock = asyncio.Lock()
        return self._lock


class InMemorySnapshotStore:
    def __init__(self) -> None:
        self._records: Dict[str, List[SnapshotRecord]] = {}
        self._lock = _LoopLock()

    async def append(
        self,
        entity_id: str,
        assessment: RiskAssessment,
        audit: Optional[Dict[str, Any]] = None,
    ) -> None:
        _check_entity(entity_id, assessment)
        async with self._lock.get():
            records = self._records.setdefault(entity_id, [])
            records.append(SnapshotRecord(seq=len(records) + 1, assessment=assessment, audit=dict(audit or {})))

    async def history(
        self,
        entity_id: str,
        time_range: Optional[TimeRange] = None,
    ) -> List[RiskAssessment]:
        async with self._lock.get():
            records = list(self._records.get(entity_id, []))
        return _ordered(records, time_range)

    async def records(self, entity_id: str) -> List[SnapshotRecord]:
        async with self._lock.get():
            return list(self._records.get(entity_id, []))


def _entity_dirname(entity_id: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_.-]+", "_", entity_id).strip("._")[:40] or "entity"
    digest = hashlib.sha256(entity_id.encode("utf-8")).hexdigest()[:12]
    return f"{slug}-{digest}"


def _append_jsonl(path: Path, obj: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(obj, ensure_ascii=False, sort_keys=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")


def _read_jsonl(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    out: List[Dict[str, Any]] = []
    try:
        with path.open("r", encoding="utf-8", errors="strict") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    item = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise StoreError(f"Corrupt snapshot record in {path} line {lineno}: {exc}") from exc
                if not isinstance(item, dict):
                    raise StoreError(f"Corrupt snapshot record in {path} line {lineno}: not an object")
                out.append(item)
    except UnicodeDecodeError as exc:
        raise StoreError(f"Snapshot file {path} is not valid UTF-8: {exc}") from exc
    return out


@dataclass(frozen=True)
class StorePaths:
    root: Path

    @property
    def entities_dir(self) -> Path:
        return self.root / "entities"

    def entity_dir(self, entity_id: str) -> Path:
        return self.entities_dir / _entity_dirname(entity_id)

    def snapshots_path(self, entity_id: str) -> Path:
        return self.entity_dir(entity_id) / "snapshots.jsonl"


class JsonlSnapshotStore:
    """
    One append-only JSON-lines file per entity.

    Lines are never rewritten. Each record carries the sequence number used
    to order snapshots that share a timestamp.
    """

    def __init__(self, root: Path):
        self.paths = StorePaths(root=Path(root))
        self._lock = _LoopLock()
        self._last_seq: Dict[str, int] = {}

    async def append(
        self,
        entity_id: str,
        assessment: RiskAssessment,
        audit: Optional[Dict[str, Any]] = None,
    ) -> None:
        _check_entity(entity_id, assessment)
        path = self.paths.snapshots_path(entity_id)
        async with self._lock.get():
            seq = await self._next_seq(entity_id, path)
            record = {
                "seq": seq,
                "entityId": entity_id,
                "assessment": assessment_to_dict(assessment),
                "audit": dict(audit or {}),
            }
            try:
                await asyncio.to_thread(_append_jsonl, path, record)
            except OSError as exc:
                raise StoreError(f"Cannot append snapshot for '{entity_id}': {exc}") from exc
            self._last_seq[entity_id] = seq
        logger.debug("Appended snapshot %d for '%s' to %s", seq, entity_id, path)

    async def history(
        self,
        entity_id: str,
        time_range: Optional[TimeRange] = None,
    ) -> List[RiskAssessment]:
        return _ordered(await self.records(entity_id), time_range)

    async def records(self, entity_id: str) -> List[SnapshotRecord]:
        path = self.paths.snapshots_path(entity_id)
        try:
            raw = await asyncio.to_thread(_read_jsonl, path)
        except OSError as exc:
            raise StoreError(f"Cannot read snapshots for '{entity_id}': {exc}") from exc

        records: List[SnapshotRecord] = []
        for item in raw:
            try:
                records.append(
                    SnapshotRecord(
                        seq=int(item["seq"]),
                        assessment=assessment_from_dict(item["assessment"]),
                        audit=dict(item.get("audit") or {}),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise StoreError(f"Malformed snapshot record for '{entity_id}': {exc}") from exc
        return records

    async def _next_seq(self, entity_id: str, path: Path) -> int:
        if entity_id not in self._last_seq:
            try:
                existing = await asyncio.to_thread(_read_jsonl, path)
            except OSError as exc:
                raise StoreError(f"Cannot read snapshots for '{entity_id}': {exc}") from exc
            try:
                self._last_seq[entity_id] = max((int(r.get("seq", 0)) for r in existing), default=0)
            except (TypeError, ValueError, AttributeError) as exc:
                raise StoreError(f"Malformed snapshot sequence for '{entity_id}': {exc}") from exc
        return self._last_seq[entity_id] + 1
