from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Set


@dataclass(frozen=True, slots=True)
class SimId:
    identifier: str
    lineage: str

    def __str__(self) -> str:
        return self.identifier


class IdAllocator:
    """Hands out organism identifiers.

    Originals are ``organism-N``. Duplicates share their parent's lineage and
    are numbered ``<lineage>-2``, ``<lineage>-3``, ... so every division of a
    lineage yields a fresh identifier. Identifiers registered through
    :meth:`claim` are skipped as well.
    """

    def __init__(self) -> None:
        self._next_organism = 0
        self._duplicate_counts: Dict[str, int] = {}
        self._issued: Set[str] = set()

    def reset(self) -> None:
        self._next_organism = 0
        self._duplicate_counts.clear()
        self._issued.clear()

    def claim(self, sim_id: SimId) -> None:
        self._issued.add(sim_id.identifier)

    def organism(self) -> SimId:
        while True:
            identifier = f"organism-{self._next_organism}"
            self._next_organism += 1
            if identifier not in self._issued:
                break
        self._issued.add(identifier)
        return SimId(identifier=identifier, lineage=identifier)

    def duplicate(self, parent: SimId) -> SimId:
        while True:
            count = self._duplicate_counts.get(parent.lineage, 1) + 1
            self._duplicate_counts[parent.lineage] = count
            identifier = f"{parent.lineage}-{count}"
            if identifier not in self._issued:
                break
        self._issued.add(identifier)
        return SimId(identifier=identifier, lineage=parent.lineage)
