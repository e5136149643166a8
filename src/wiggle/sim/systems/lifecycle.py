from __future__ import annotations

from typing import TYPE_CHECKING, List

from pygame.math import Vector2

from ..core.organism import Organism
from ..core.segment import Segment
from ..core.shelter import Shelter

if TYPE_CHECKING:
    from ..core.ecosystem import Ecosystem


def random_organism(
    ecosystem: Ecosystem,
    energy: int,
    length: float | None = None,
    movement_limit: float | None = None,
) -> Organism:
    organisms = ecosystem._config.organisms
    rng = ecosystem._rng
    length = organisms.segment_length if length is None else length
    movement_limit = organisms.movement_limit if movement_limit is None else movement_limit
    segment_count = rng.next_int(max(1, organisms.min_segments), max(1, organisms.max_segments))
    width, height = ecosystem.boundary
    head = rng.next_point(width, height)
    segments: List[Segment] = []
    for _ in range(segment_count):
        segment = Segment.random(rng, head, length, movement_limit)
        segments.append(segment)
        head = segment.tail
    return Organism(id=ecosystem._ids.organism(), segments=segments, energy=max(0, energy))


def random_shelter(ecosystem: Ecosystem) -> Shelter:
    config = ecosystem._config.shelters
    rng = ecosystem._rng
    width, height = ecosystem.boundary
    return Shelter.at(
        rng.next_point(width, height),
        Vector2(
            rng.next_range(config.min_size, config.max_size),
            rng.next_range(config.min_size, config.max_size),
        ),
    )


def maybe_reset_shelters(ecosystem: Ecosystem) -> bool:
    interval = ecosystem._config.shelters.reset_interval
    if interval <= 0 or ecosystem._move_counter - ecosystem._last_shelter_reset < interval:
        return False
    count = len(ecosystem._shelters)
    ecosystem._shelters = [random_shelter(ecosystem) for _ in range(count)]
    ecosystem._last_shelter_reset = ecosystem._move_counter
    return True


def divide_organisms(ecosystem: Ecosystem) -> int:
    threshold = ecosystem._config.division_threshold
    if threshold <= 0:
        return 0
    jitter = ecosystem._config.organisms.division_jitter
    children = []
    # Children join after the pass so they wait for the next step.
    for organism in ecosystem._organisms:
        if organism.energy >= threshold:
            children.append(
                organism.divide(ecosystem._ids.duplicate(organism.id), ecosystem._rng.next_jitter(jitter))
            )
    ecosystem._organisms.extend(children)
    return len(children)


def remove_dead(ecosystem: Ecosystem) -> tuple[int, int]:
    convert = ecosystem._config.shelters.dead_organisms_become_shelters
    survivors = []
    deaths = 0
    shelters_created = 0
    for organism in ecosystem._organisms:
        if organism.energy > 0:
            survivors.append(organism)
            continue
        deaths += 1
        if convert:
            ecosystem._shelters.append(Shelter.from_bounds(organism.frame()))
            shelters_created += 1
    ecosystem._organisms = survivors
    return deaths, shelters_created


def replenish(ecosystem: Ecosystem) -> int:
    minimum = ecosystem._config.min_organism_count
    missing = minimum - len(ecosystem._organisms)
    if minimum <= 0 or missing <= 0:
        return 0
    energy = ecosystem._config.organisms.replenish_energy
    for _ in range(missing):
        ecosystem._organisms.append(random_organism(ecosystem, energy))
    return missing
