from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

from ..core.shelter import Shelter
from .metrics import StepMetrics


@dataclass(frozen=True, slots=True)
class EcosystemSnapshot:
    step: int
    move_counter: int
    points: Tuple[Tuple[Tuple[float, float], ...], ...]
    energy_levels: Tuple[int, ...]
    organism_ids: Tuple[str, ...]
    shelters: Tuple[Shelter, ...]
    moves_per_second: int
    boundary: Tuple[float, float]
    metrics: Optional[StepMetrics] = None

    @property
    def population(self) -> int:
        return len(self.organism_ids)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "move_counter": self.move_counter,
            "moves_per_second": self.moves_per_second,
            "boundary": list(self.boundary),
            "organisms": [
                {"id": organism_id, "energy": energy, "points": [list(point) for point in points]}
                for organism_id, energy, points in zip(self.organism_ids, self.energy_levels, self.points)
            ],
            "shelters": [asdict(shelter) for shelter in self.shelters],
            "metrics": asdict(self.metrics) if self.metrics is not None else None,
        }
