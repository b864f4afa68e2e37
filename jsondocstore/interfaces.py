from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol

Document = Mapping[str, Any]
Predicate = Callable[[Document], bool]


@dataclass(frozen=True)
class Snapshot:
    """
    Full state of one collection at an instant: documents keyed by str(id), plus collection metadata.
    """

    documents: Mapping[str, Document] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)


class SnapshotStorage(Protocol):
    """
    Where a collection lives between process runs. One snapshot per collection, replaced as a whole.
    """

    def load(self) -> Snapshot:
        """Load the last saved snapshot; an empty one when nothing usable exists (never raises)."""
        ...

    def save(self, snapshot: Snapshot) -> None:
        """Persist the full snapshot atomically."""
        ...
