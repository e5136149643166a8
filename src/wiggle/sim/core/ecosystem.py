from __future__ import annotations

import logging
import threading
from time import perf_counter
from typing import Callable, List, Tuple

from pygame.math import Vector2

from .config import SimulationConfig
from .ids import IdAllocator, SimId
from .organism import Organism
from .rng import DeterministicRng
from .shelter import Shelter
from ..systems import lifecycle, metrics as metrics_system
from ..systems.dispatch import BatchDispatcher, DispatchResult, FlatPopulation, flatten
from ..systems.movement import KernelParams
from ..types.metrics import StepMetrics
from ..types.snapshot import EcosystemSnapshot

logger = logging.getLogger(__name__)

SnapshotObserver = Callable[[EcosystemSnapshot], None]


class Ecosystem:
    """Single owner of the organism and shelter lists.

    Every mutation, including ``step``, runs under one re-entrant lock, so the
    background movement loop and externally triggered mutators never
    interleave. A snapshot is published to observers after each mutation,
    strictly after the maintenance pass of the same step. ``organisms`` and
    ``shelters`` are tuple copies; change state through the mutators.
    """

    def __init__(self, config: SimulationConfig, dispatcher: BatchDispatcher | None = None):
        self._config = config
        self._lock = threading.RLock()
        self._rng = DeterministicRng(config.seed)
        self._ids = IdAllocator()
        self._dispatcher = dispatcher if dispatcher is not None else self._build_dispatcher(config)
        self._organisms: List[Organism] = []
        self._shelters: List[Shelter] = []
        self._observers: List[SnapshotObserver] = []
        self._move_counter = 0
        self._last_shelter_reset = 0
        self._step_index = 0
        self._metrics: StepMetrics | None = None
        self._mps = metrics_system.MovesPerSecondMeter(config.mps_interval)
        self.reset()

    @staticmethod
    def _build_dispatcher(config: SimulationConfig) -> BatchDispatcher:
        return BatchDispatcher(
            max_workers=config.kernel.max_workers,
            parallel_threshold=config.kernel.parallel_threshold,
        )

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def boundary(self) -> Tuple[float, float]:
        return self._config.boundary

    @property
    def organisms(self) -> Tuple[Organism, ...]:
        return tuple(self._organisms)

    @property
    def shelters(self) -> Tuple[Shelter, ...]:
        return tuple(self._shelters)

    @property
    def move_counter(self) -> int:
        return self._move_counter

    @property
    def metrics(self) -> StepMetrics | None:
        return self._metrics

    @property
    def moves_per_second(self) -> int:
        return self._mps.value

    def close(self) -> None:
        self._dispatcher.close()

    def subscribe(self, observer: SnapshotObserver) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def reset(self, config: SimulationConfig | None = None, populate: bool = True) -> None:
        with self._lock:
            if config is not None:
                self._config = config
            config = self._config
            self._organisms = []
            self._shelters = []
            self._rng.reset(config.seed)
            self._ids.reset()
            self._step_index = 0
            self._metrics = None
            # Shelter resets count from the moment of reconfiguration.
            self._last_shelter_reset = self._move_counter
            self._mps.reset(self._move_counter, interval=config.mps_interval)
            if populate:
                self._shelters.extend(lifecycle.random_shelter(self) for _ in range(config.shelters.count))
                organisms = config.organisms
                for _ in range(config.organism_count):
                    energy = self._rng.next_int(organisms.min_starting_energy, organisms.max_starting_energy)
                    self._organisms.append(lifecycle.random_organism(self, energy))
            logger.info(
                f"Ecosystem reset: {len(self._organisms)} organisms, {len(self._shelters)} shelters, "
                f"boundary {config.boundary}"
            )
            self._publish()

    def set_mps_interval(self, interval: float) -> None:
        with self._lock:
            self._mps.reset(self._move_counter, interval=interval)

    def step(self, iteration_count: int | None = None, energy_gain_rate: int | None = None) -> StepMetrics:
        with self._lock:
            start = perf_counter()
            config = self._config
            iterations = config.kernel.iteration_count if iteration_count is None else iteration_count
            gain = config.shelters.energy_gain_rate if energy_gain_rate is None else energy_gain_rate

            batch = flatten(self._organisms)
            # Raises LayoutError in strict mode before any state changes.
            movable = self._dispatcher.validate(batch)

            self._move_counter += max(0, iterations)
            shelters_reset = lifecycle.maybe_reset_shelters(self)
            if shelters_reset:
                logger.debug(f"Shelters regenerated at move {self._move_counter}")

            params = KernelParams(
                shelters=tuple(self._shelters),
                boundary=config.boundary,
                iteration_count=iterations,
                energy_gain_rate=gain,
                occupancy_check_interval=config.kernel.occupancy_check_interval,
                boundary_check_interval=config.kernel.boundary_check_interval,
            )
            if movable:
                self._scatter(batch, self._dispatcher.run(batch, params))

            births = lifecycle.divide_organisms(self)
            deaths, shelters_created = lifecycle.remove_dead(self)
            replenished = lifecycle.replenish(self)

            self._step_index += 1
            elapsed_ms = (perf_counter() - start) * 1000.0
            self._metrics = metrics_system.create_metrics(
                step=self._step_index,
                move_counter=self._move_counter,
                energies=[organism.energy for organism in self._organisms],
                births=births,
                deaths=deaths,
                shelters_created=shelters_created,
                replenished=replenished,
                shelter_count=len(self._shelters),
                shelters_reset=shelters_reset,
                duration_ms=elapsed_ms,
                moves_per_second=self._mps.sample(self._move_counter),
            )
            self._publish()
            return self._metrics

    def _scatter(self, batch: FlatPopulation, result: DispatchResult) -> None:
        points = result.points
        energy = result.energy
        offsets = batch.point_offsets
        for index, organism in enumerate(self._organisms):
            if index + 1 >= len(offsets) or index >= len(energy):
                break
            start = offsets[index]
            end = offsets[index + 1]
            if end - start == len(organism.points) and end <= len(points):
                organism.points = points[start:end]
                organism.sync_segments()
            organism.energy = energy[index]

    def remove_dead_organisms(self) -> int:
        with self._lock:
            deaths, _ = lifecycle.remove_dead(self)
            lifecycle.replenish(self)
            self._publish()
            return deaths

    def new_id(self) -> SimId:
        with self._lock:
            return self._ids.organism()

    def add_organism(self, organism: Organism) -> None:
        """Add a caller-built organism.

        Use :meth:`new_id` for a fresh identifier. Raises ``ValueError`` when
        an organism with the same identifier is alive.
        """
        with self._lock:
            if self.find_organism(organism.id) is not None:
                raise ValueError(f"organism {organism.id} already exists")
            self._ids.claim(organism.id)
            self._organisms.append(organism)
            self._publish()

    def add_random_organisms(
        self,
        count: int = 1,
        min_energy: int | None = None,
        max_energy: int | None = None,
        length: float | None = None,
        movement_limit: float | None = None,
    ) -> List[Organism]:
        with self._lock:
            organisms = self._config.organisms
            low = organisms.min_starting_energy if min_energy is None else min_energy
            high = organisms.max_starting_energy if max_energy is None else max_energy
            added = [
                lifecycle.random_organism(self, self._rng.next_int(low, high), length, movement_limit)
                for _ in range(max(0, count))
            ]
            self._organisms.extend(added)
            self._publish()
            return added

    def add_shelter(self, position: Vector2, size: Vector2) -> Shelter:
        with self._lock:
            shelter = Shelter.at(position, size)
            self._shelters.append(shelter)
            self._publish()
            return shelter

    def add_random_shelters(self, count: int) -> List[Shelter]:
        with self._lock:
            added = [lifecycle.random_shelter(self) for _ in range(max(0, count))]
            self._shelters.extend(added)
            self._publish()
            return added

    def find_organism(self, identifier: str | SimId) -> Organism | None:
        key = identifier.identifier if isinstance(identifier, SimId) else identifier
        with self._lock:
            for organism in self._organisms:
                if organism.id.identifier == key:
                    return organism
        return None

    def grow_organism(
        self,
        identifier: str | SimId,
        angle: float | None = None,
        shelter_angle: float | None = None,
        length: float | None = None,
    ) -> bool:
        with self._lock:
            organism = self.find_organism(identifier)
            if organism is None:
                return False
            organism.grow(angle, shelter_angle, length)
            self._publish()
            return True

    def duplicate_organism(self, identifier: str | SimId) -> Organism | None:
        with self._lock:
            organism = self.find_organism(identifier)
            if organism is None:
                return None
            child = organism.divide(
                self._ids.duplicate(organism.id), Vector2(self._config.organisms.duplicate_offset)
            )
            self._organisms.append(child)
            self._publish()
            return child

    def snapshot(self) -> EcosystemSnapshot:
        with self._lock:
            return EcosystemSnapshot(
                step=self._step_index,
                move_counter=self._move_counter,
                points=tuple(
                    tuple((point.x, point.y) for point in organism.points) for organism in self._organisms
                ),
                energy_levels=tuple(organism.energy for organism in self._organisms),
                organism_ids=tuple(organism.id.identifier for organism in self._organisms),
                shelters=tuple(self._shelters),
                moves_per_second=self._mps.value,
                boundary=self._config.boundary,
                metrics=self._metrics,
            )

    def _publish(self) -> None:
        if not self._observers:
            return
        snapshot = self.snapshot()
        for observer in list(self._observers):
            observer(snapshot)
