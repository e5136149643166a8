from __future__ import annotations

import math

import pytest
from pygame.math import Vector2

from wiggle.sim.core.config import KernelConfig, OrganismConfig, ShelterConfig, SimulationConfig
from wiggle.sim.core.ecosystem import Ecosystem
from wiggle.sim.core.ids import SimId
from wiggle.sim.core.organism import Organism
from wiggle.sim.core.segment import Segment
from wiggle.sim.core.shelter import Shelter
from wiggle.sim.systems.dispatch import BatchDispatcher
from wiggle.sim.systems.movement import KernelParams, LayoutError, move_organism
from wiggle.sim.utils.math2d import bounding_box


def _config(**overrides) -> SimulationConfig:
    values = dict(
        boundary=(200.0, 150.0),
        organism_count=0,
        min_organism_count=0,
        division_threshold=0,
        seed=7,
        organisms=OrganismConfig(),
        shelters=ShelterConfig(count=0),
        kernel=KernelConfig(iteration_count=20, max_workers=1),
    )
    values.update(overrides)
    return SimulationConfig(**values)


def _organism(identifier: str, head: Vector2, energy: int, count: int = 2) -> Organism:
    segments = []
    for _ in range(count):
        segment = Segment.from_head(head, 10.0, math.radians(2.0))
        segments.append(segment)
        head = segment.tail
    return Organism(id=SimId(identifier, identifier), segments=segments, energy=energy)


@pytest.fixture
def ecosystem():
    eco = Ecosystem(_config())
    yield eco
    eco.close()


def test_reset_populates_from_config():
    config = _config(organism_count=12, shelters=ShelterConfig(count=4))
    eco = Ecosystem(config)

    assert len(eco.organisms) == 12
    assert len(eco.shelters) == 4
    for organism in eco.organisms:
        assert 2 <= len(organism.segments) <= 6
        assert config.organisms.min_starting_energy <= organism.energy <= config.organisms.max_starting_energy
        assert organism.is_consistent()
    for shelter in eco.shelters:
        assert 10.0 <= shelter.width <= 50.0
        assert 10.0 <= shelter.height <= 50.0
    assert len({organism.id.identifier for organism in eco.organisms}) == 12
    eco.close()


def test_step_keeps_layout_energy_and_boundary_invariants():
    config = _config(organism_count=15, min_organism_count=15, shelters=ShelterConfig(count=5))
    eco = Ecosystem(config)

    for _ in range(3):
        metrics = eco.step()
        for organism in eco.organisms:
            assert organism.is_consistent()
            assert organism.energy >= 0
            min_x, min_y, max_x, max_y = organism.frame()
            assert min_x >= -1e-9 and max_x <= 200.0 + 1e-9
            assert min_y >= -1e-9 and max_y <= 150.0 + 1e-9
            assert organism.segments[0].head == organism.points[0]
        assert metrics.population == len(eco.organisms)
    assert eco.move_counter == 60
    assert eco.metrics.step == 3
    eco.close()


def test_sheltered_organism_gains_energy(ecosystem):
    ecosystem.add_shelter(Vector2(0.0, 0.0), Vector2(200.0, 150.0))
    ecosystem.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=10))

    ecosystem.step(iteration_count=10, energy_gain_rate=1)

    assert ecosystem.organisms[0].energy == 11


def test_division_splits_energy_and_appends_child():
    eco = Ecosystem(_config(division_threshold=100))
    eco.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=150))

    metrics = eco.step(iteration_count=0)

    assert metrics.births == 1
    assert len(eco.organisms) == 2
    parent, child = eco.organisms
    assert parent.energy == 75
    assert child.energy == 75
    assert child.id.identifier == "organism-0-2"
    assert len(child.segments) == len(parent.segments)
    eco.close()


def test_division_at_exact_threshold():
    eco = Ecosystem(_config(division_threshold=200_000))
    eco.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=200_000))

    metrics = eco.step(iteration_count=0)

    assert metrics.births == 1
    assert [organism.energy for organism in eco.organisms] == [100_000, 100_000]
    eco.close()


def test_division_disabled_when_threshold_is_zero(ecosystem):
    ecosystem.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=10_000_000))

    metrics = ecosystem.step(iteration_count=0)

    assert metrics.births == 0
    assert len(ecosystem.organisms) == 1


def test_dead_organisms_are_removed(ecosystem):
    ecosystem.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=0))
    ecosystem.add_organism(_organism("organism-1", Vector2(80.0, 80.0), energy=5))

    metrics = ecosystem.step(iteration_count=0)

    assert metrics.deaths == 1
    assert metrics.shelters_created == 0
    assert [organism.id.identifier for organism in ecosystem.organisms] == ["organism-1"]
    assert ecosystem.shelters == ()


def test_dead_organism_becomes_shelter_over_its_frame():
    eco = Ecosystem(_config(shelters=ShelterConfig(count=0, dead_organisms_become_shelters=True)))
    corpse = _organism("organism-0", Vector2(50.0, 50.0), energy=0)
    frame = corpse.frame()
    eco.add_organism(corpse)

    metrics = eco.step(iteration_count=0)

    assert metrics.deaths == 1
    assert metrics.shelters_created == 1
    assert eco.organisms == ()
    assert eco.shelters == (Shelter.from_bounds(frame),)
    eco.close()


def test_replenishment_tops_up_to_minimum():
    eco = Ecosystem(_config(min_organism_count=5))
    assert eco.organisms == ()

    metrics = eco.step(iteration_count=0)

    assert metrics.replenished == 5
    assert len(eco.organisms) == 5
    for organism in eco.organisms:
        assert organism.energy == 10_000
    eco.close()


def test_shelters_regenerate_on_reset_interval():
    eco = Ecosystem(_config(shelters=ShelterConfig(count=3, reset_interval=100)))
    original = eco.shelters

    first = eco.step(iteration_count=50)
    assert not first.shelters_reset
    assert eco.shelters == original

    second = eco.step(iteration_count=50)
    assert second.shelters_reset
    assert len(eco.shelters) == 3
    assert eco.shelters != original
    eco.close()


def test_observers_receive_snapshots_until_unsubscribed(ecosystem):
    received = []
    unsubscribe = ecosystem.subscribe(received.append)
    ecosystem.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=100))

    ecosystem.step(iteration_count=5)

    assert len(received) == 2
    snapshot = received[-1]
    assert snapshot.step == 1
    assert snapshot.move_counter == 5
    assert snapshot.organism_ids == ("organism-0",)
    assert snapshot.metrics is ecosystem.metrics
    assert len(snapshot.points[0]) == 3

    unsubscribe()
    ecosystem.step(iteration_count=5)
    assert len(received) == 2


def test_same_seed_gives_same_trajectory():
    config = _config(organism_count=10, min_organism_count=10, shelters=ShelterConfig(count=3))
    first = Ecosystem(config)
    second = Ecosystem(config)

    for _ in range(3):
        first.step()
        second.step()

    a = first.snapshot()
    b = second.snapshot()
    assert a.points == b.points
    assert a.energy_levels == b.energy_levels
    assert a.organism_ids == b.organism_ids
    assert a.shelters == b.shelters
    first.close()
    second.close()


def test_grow_and_duplicate_by_identifier(ecosystem):
    ecosystem.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=301))

    assert ecosystem.grow_organism("organism-0")
    organism = ecosystem.find_organism("organism-0")
    assert len(organism.segments) == 3
    assert organism.is_consistent()

    child = ecosystem.duplicate_organism(organism.id)
    assert child is not None
    assert organism.energy == 150
    assert child.energy == 150
    assert child.points[0] == organism.points[0] + Vector2(50.0, 50.0)
    assert len(ecosystem.organisms) == 2


def test_unknown_identifier_is_a_no_op(ecosystem):
    ecosystem.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=10))

    assert not ecosystem.grow_organism("organism-99")
    assert ecosystem.duplicate_organism("organism-99") is None
    assert ecosystem.find_organism("organism-99") is None
    assert len(ecosystem.organisms) == 1


def test_add_random_organisms_and_shelters(ecosystem):
    organisms = ecosystem.add_random_organisms(3, min_energy=5, max_energy=5)
    shelters = ecosystem.add_random_shelters(2)

    assert len(organisms) == 3
    assert all(organism.energy == 5 for organism in organisms)
    assert len(ecosystem.organisms) == 3
    assert tuple(shelters) == ecosystem.shelters


def test_remove_dead_organisms_replenishes(ecosystem):
    ecosystem.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=0))

    assert ecosystem.remove_dead_organisms() == 1
    assert ecosystem.organisms == ()


def test_step_on_empty_ecosystem_is_safe(ecosystem):
    metrics = ecosystem.step()

    assert metrics.population == 0
    assert metrics.average_energy == 0.0
    assert ecosystem.move_counter == 20


def test_reset_clears_population_but_keeps_move_counter():
    eco = Ecosystem(_config(organism_count=4))
    eco.step(iteration_count=7)

    eco.reset(_config(organism_count=2, seed=9))

    assert len(eco.organisms) == 2
    assert eco.move_counter == 7
    assert eco.metrics is None
    assert eco.snapshot().step == 0
    eco.close()


def test_replenishment_skips_identifiers_already_in_use():
    eco = Ecosystem(_config(min_organism_count=3))
    eco.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=100))

    eco.step(iteration_count=0)

    identifiers = [organism.id.identifier for organism in eco.organisms]
    assert identifiers == ["organism-0", "organism-1", "organism-2"]
    eco.close()


def test_new_id_is_fresh_and_live_duplicates_are_refused(ecosystem):
    first = ecosystem.new_id()
    ecosystem.add_organism(_organism(first.identifier, Vector2(50.0, 50.0), energy=100))
    second = ecosystem.new_id()

    assert first != second
    with pytest.raises(ValueError):
        ecosystem.add_organism(_organism(first.identifier, Vector2(60.0, 60.0), energy=100))
    assert len(ecosystem.organisms) == 1


def test_decayed_organism_is_removed_in_the_same_step():
    config = _config(shelters=ShelterConfig(count=0, dead_organisms_become_shelters=True))
    eco = Ecosystem(config)
    organism = _organism("organism-0", Vector2(50.0, 50.0), energy=1)
    eco.add_organism(organism)
    params = KernelParams(shelters=(), boundary=config.boundary, iteration_count=10)
    moved, energy = move_organism(organism.points, organism.segments, organism.energy, params)
    assert energy == 0

    metrics = eco.step(iteration_count=10)

    assert metrics.deaths == 1
    assert metrics.shelters_created == 1
    assert eco.organisms == ()
    assert eco.shelters == (Shelter.from_bounds(bounding_box(moved)),)
    eco.close()


def test_step_invariants_hold_with_division_enabled():
    config = _config(
        organism_count=10,
        min_organism_count=10,
        division_threshold=15_000,
        shelters=ShelterConfig(count=4),
    )
    eco = Ecosystem(config)

    history = [eco.step() for _ in range(3)]

    assert history[0].births > 0
    for organism in eco.organisms:
        assert organism.is_consistent()
        assert organism.energy >= 0
    identifiers = [organism.id.identifier for organism in eco.organisms]
    assert len(identifiers) == len(set(identifiers))
    eco.close()


def test_layout_error_leaves_state_untouched():
    config = _config(shelters=ShelterConfig(count=2, reset_interval=10))
    eco = Ecosystem(config, dispatcher=BatchDispatcher(max_workers=1, strict=True))
    organism = _organism("organism-0", Vector2(50.0, 50.0), energy=100)
    eco.add_organism(organism)
    organism.points.append(Vector2(0.0, 0.0))
    shelters = eco.shelters

    with pytest.raises(LayoutError):
        eco.step(iteration_count=20)

    assert eco.move_counter == 0
    assert eco.shelters == shelters
    assert eco.metrics is None
    eco.close()


def test_population_views_are_read_only(ecosystem):
    ecosystem.add_organism(_organism("organism-0", Vector2(50.0, 50.0), energy=100))

    assert isinstance(ecosystem.organisms, tuple)
    assert isinstance(ecosystem.shelters, tuple)
    with pytest.raises(AttributeError):
        ecosystem.organisms.append(_organism("organism-1", Vector2(60.0, 60.0), energy=100))
    assert len(ecosystem.organisms) == 1
