"""Pattern Library: immutable, versioned sets of fingerprint-scoped rules.

Readers take a snapshot once per document and keep it for the whole parse.
The miner builds a complete new version and publishes it with a single pointer
swap, so a parse never sees a half-updated library.

On disk every version is its own file (``v000007.json``) and never rewritten;
``CURRENT`` names the live one. Both are written temp-file-then-rename.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from cookbook.patterns.rules import RuleDefinition

logger = logging.getLogger(__name__)

CURRENT_POINTER = "CURRENT"


class PatternRule(BaseModel):
    """A learned extraction rule for one document fingerprint."""

    rule_id: str
    fingerprint: str
    rule_definition: RuleDefinition
    success_rate: float = Field(ge=0.0, le=1.0)
    sample_count: int = Field(ge=0, default=0)
    failure_streak: int = Field(ge=0, default=0)
    active: bool = True

    model_config = {"frozen": True}


class PatternLibraryVersion(BaseModel):
    """One immutable published state of the library."""

    version: int = Field(ge=0, default=0)
    rules: tuple[PatternRule, ...] = ()
    published_at: datetime | None = None

    model_config = {"frozen": True}

    def lookup(self, fingerprint: str) -> list[PatternRule]:
        """Active rules for a fingerprint, best first."""
        matches = [r for r in self.rules if r.fingerprint == fingerprint and r.active]
        return sorted(matches, key=lambda r: (-r.success_rate, -r.sample_count, r.rule_id))

    def rules_for(self, fingerprint: str) -> list[PatternRule]:
        """All rules for a fingerprint, pruned ones included."""
        return [r for r in self.rules if r.fingerprint == fingerprint]

    @property
    def active_count(self) -> int:
        return sum(1 for r in self.rules if r.active)


def update_success_rate(rate: float, observed: float, alpha: float) -> float:
    """Exponential moving average of a rule's reproduction outcomes."""
    return min(1.0, max(0.0, alpha * observed + (1.0 - alpha) * rate))


class LibraryVersionError(Exception):
    """Raised when publishing a version that does not advance the library."""


class PatternLibrary:
    """Holds the live library version and swaps it atomically on publish."""

    def __init__(
        self,
        storage_dir: Path | None = None,
        initial: PatternLibraryVersion | None = None,
    ) -> None:
        self._storage_dir = storage_dir
        self._current = initial or PatternLibraryVersion()
        self._lock = threading.Lock()
        if storage_dir is not None:
            storage_dir.mkdir(parents=True, exist_ok=True)

    def snapshot(self) -> PatternLibraryVersion:
        with self._lock:
            return self._current

    def publish(self, version: PatternLibraryVersion) -> PatternLibraryVersion:
        """Persist and install a new version. Readers holding older snapshots keep them."""
        with self._lock:
            if version.version <= self._current.version:
                raise LibraryVersionError(
                    f"version {version.version} does not advance {self._current.version}"
                )
            if version.published_at is None:
                version = version.model_copy(
                    update={"published_at": datetime.now(timezone.utc)}
                )
            if self._storage_dir is not None:
                self._persist(version)
            self._current = version

        logger.info(
            "published pattern library v%d (%d rules, %d active)",
            version.version,
            len(version.rules),
            version.active_count,
        )
        return version

    def _persist(self, version: PatternLibraryVersion) -> None:
        assert self._storage_dir is not None
        name = f"v{version.version:06d}.json"
        _atomic_write(self._storage_dir / name, version.model_dump_json(indent=2))
        _atomic_write(self._storage_dir / CURRENT_POINTER, name)

    def versions(self) -> list[int]:
        """Version numbers present on disk, oldest first."""
        if self._storage_dir is None:
            return [self._current.version]
        return sorted(int(p.stem[1:]) for p in self._storage_dir.glob("v*.json"))

    @classmethod
    def load(cls, storage_dir: Path) -> "PatternLibrary":
        """Restore the library from the version named by the CURRENT pointer."""
        pointer = storage_dir / CURRENT_POINTER
        if not pointer.exists():
            return cls(storage_dir)
        path = storage_dir / pointer.read_text().strip()
        version = PatternLibraryVersion.model_validate_json(path.read_text())
        logger.info("loaded pattern library v%d from %s", version.version, path)
        return cls(storage_dir, initial=version)


def _atomic_write(path: Path, content: str) -> None:
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        temp_path.write_text(content)
        temp_path.replace(path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise
