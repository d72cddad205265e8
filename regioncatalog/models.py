"""Plain data types passed between fetcher, workers and orchestrator."""

from dataclasses import dataclass, field, replace
from typing import List, Optional


def normalize_name(name: str) -> str:
    return name.strip()


@dataclass(frozen=True)
class Entity:
    """One decoded catalog item (a region or an institution)."""

    remote_id: int
    name: str

    def normalized(self) -> "Entity":
        return replace(self, name=normalize_name(self.name))


@dataclass
class Page:
    """One batch of items returned by a single fetch call."""

    items: List[Entity]
    requested: int
    offset: int = 0
    total_count: Optional[int] = None  # informational only

    @property
    def is_final(self) -> bool:
        # Exhaustion is structural: a short page ends the walk, whatever
        # total the remote side reports.
        return len(self.items) < self.requested


@dataclass
class SyncReport:
    """Outcome of one pipeline run."""

    state: str = ""
    pages_fetched: int = 0
    regions_dispatched: int = 0
    regions_stored: int = 0
    regions_existing: int = 0
    institutions_stored: int = 0
    institutions_existing: int = 0
    failed_workers: int = 0
    producer_error: Optional[str] = None
    elapsed_seconds: float = 0.0
    worker_errors: List[str] = field(default_factory=list)
