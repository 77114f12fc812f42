import inspect
import logging

import numpy as np
import pytest

from constants import PARKED_POSITION
from simulation import ParticleSimulation
from transform import InstanceBuffer, ParentTransform
from volume import Volume, contains_points


def calm(zone, **overrides):
    params = dict(
        zone=zone,
        start_velocity=(0, 0, 0),
        brownian_force=0.0,
        lifetime=1e6,
        limit=50,
        shrink_over_time=False,
        seed=7,
    )
    params.update(overrides)
    return ParticleSimulation(**params)


def assert_parked(matrix):
    assert matrix[0, 0] == 0 and matrix[1, 1] == 0 and matrix[2, 2] == 0
    assert matrix[:3, 3].tolist() == list(PARKED_POSITION)


def test_defaults_match_reference(box):
    sim = ParticleSimulation(zone=box, limit=10)
    assert sim.creation_zones == [box]
    assert sim.start_velocity.tolist() == [0.1, -0.1, -0.1]
    assert sim.start_size == 1
    assert sim.brownian_force == 0.01
    assert sim.lifetime == 10
    assert sim.shrink_over_time is True
    assert sim.opacity == 1
    assert sim.color == '0xffffff'
    assert inspect.signature(ParticleSimulation).parameters["limit"].default == 10000


def test_attach_prefills_every_slot(box, origin):
    sim = calm(box)
    assert sim.live_count == 0
    sim.attach(origin)
    assert sim.live_count == 50
    assert contains_points(box, sim.pool.positions[:50]).all()


def test_attach_prefill_converts_to_world_space(box):
    parent = ParentTransform.from_translation((100, 0, 0))
    sim = calm(box)
    sim.attach(parent)
    xs = sim.pool.positions[:sim.live_count, 0]
    assert xs.min() >= 95 and xs.max() <= 105


def test_attach_twice_is_an_error(box, origin):
    sim = calm(box)
    sim.attach(origin)
    with pytest.raises(RuntimeError):
        sim.attach(origin)


def test_attach_rejects_mismatched_sink(box, origin):
    sim = calm(box, limit=5)
    with pytest.raises(ValueError):
        sim.attach(origin, sink=InstanceBuffer(4))


def test_tick_returns_limit_transforms_every_frame(box, origin):
    sim = ParticleSimulation(zone=box, creation_zones=[Volume((0, 0, 4.5), (10, 10, 1))],
                             lifetime=2.0, limit=64, brownian_force=0.2, seed=3)
    sim.attach(origin)
    for _ in range(30):
        matrices = sim.tick(0.1)
        assert matrices.shape == (64, 4, 4)
        live = sim.live_count
        assert np.all(matrices[live:, 0, 0] == 0)


def test_survivors_stay_inside_the_zone(box):
    parent = ParentTransform.from_translation((-20, 3, 0))
    sim = ParticleSimulation(zone=box, start_velocity=(0.3, 0, 0), lifetime=5.0,
                             limit=200, brownian_force=0.5, seed=11)
    sim.attach(parent)
    for _ in range(20):
        sim.tick(0.25)
        local = parent.world_to_local(sim.pool.positions[:sim.live_count])
        assert contains_points(box, local).all()
        assert np.all(sim.pool.ages[:sim.live_count] > 0)


def test_empty_pool_refills_in_one_tick(box, origin):
    sim = calm(box, limit=100)
    sim.attach(origin, prefill=False)
    assert sim.live_count == 0
    assert sim.creation_count() == 100
    sim.tick(0.016)
    assert sim.live_count == 100


def test_dead_slot_is_parked_in_the_same_tick(box, origin):
    sim = calm(box, lifetime=1.0, limit=1)
    sim.attach(origin)
    before = sim.tick(0.0).copy()
    assert before[0, 0, 0] > 0

    # Every age is at most the lifetime, so this step kills the particle
    matrices = sim.tick(2.0)
    assert sim.live_count == 0
    assert_parked(matrices[0])


def test_zero_capacity_ticks_cleanly(box, origin):
    sim = calm(box, limit=0)
    sim.attach(origin)
    assert sim.tick(0.1).shape == (0, 4, 4)
    assert sim.tick(0.1).shape == (0, 4, 4)


def test_single_particle_scenario(box, origin):
    sim = ParticleSimulation(zone=box, creation_zones=[box], start_velocity=(0, 0, 0),
                             brownian_force=0.0, start_size=1.0, lifetime=1.0, limit=1,
                             shrink_over_time=True, seed=2024)
    sim.attach(origin)
    assert sim.live_count == 1
    particle = sim.pool[0]
    assert 0 < particle.age <= 1
    assert contains_points(box, particle.position[np.newaxis]).all()

    matrices = sim.tick(0.5)
    remaining = particle.age - 0.5
    if remaining > 0:
        assert sim.live_count == 1
        assert sim.pool[0].age == pytest.approx(remaining)
        assert sim.pool[0].size == pytest.approx(remaining)
        assert matrices[0, 0, 0] == pytest.approx(remaining * 0.2, rel=1e-5)
        assert np.allclose(matrices[0, :3, 3], particle.position)
    else:
        assert sim.live_count == 0
        assert_parked(matrices[0])


def test_single_particle_scenario_covers_both_outcomes(box, origin):
    outcomes = set()
    for seed in range(40):
        sim = ParticleSimulation(zone=box, start_velocity=(0, 0, 0), brownian_force=0.0,
                                 lifetime=1.0, limit=1, seed=seed)
        sim.attach(origin)
        sim.tick(0.5)
        outcomes.add(sim.live_count)
    assert outcomes == {0, 1}


def test_tick_before_attach_does_not_crash(box):
    sim = calm(box, limit=3)
    assert not sim.spawn((0, 0, 0))
    matrices = sim.tick(0.1)
    assert matrices.shape == (3, 4, 4)
    for slot in range(3):
        assert_parked(matrices[slot])
    assert sim.live_count == 0


def test_spawn_after_attach(box, origin):
    sim = calm(box, limit=2)
    sim.attach(origin, prefill=False)
    assert sim.spawn((1, 1, 1))
    assert sim.live_count == 1


def test_creation_zone_percentage(box):
    shell = Volume((0, 0, 4.5), (10, 10, 1))
    sim = calm(box, creation_zones=[shell], limit=10)
    assert sim.creation_zone_percentage == pytest.approx(0.1)
    # (10 - 0) / 0.1 attempts, most of which would land past capacity
    assert sim.creation_count() == 100


def test_creation_count_never_negative(box, origin):
    big = Volume((0, 0, 0), (20, 20, 20))
    sim = calm(box, creation_zones=[big, big], limit=10)
    assert sim.creation_zone_percentage == pytest.approx(16.0)
    sim.attach(origin)
    assert sim.creation_count() == 0


def test_degenerate_zone_falls_back_to_unit_percentage(origin):
    flat = Volume((0, 0, 0), (10, 10, 0))
    sim = calm(flat, limit=5)
    assert sim.creation_zone_percentage == 1.0
    sim.attach(origin)
    sim.tick(0.1)
    assert sim.live_count == 5


@pytest.mark.parametrize("overrides", [
    {"limit": -1},
    {"lifetime": 0},
    {"brownian_force": -0.1},
    {"start_size": -1},
    {"creation_zones": []},
])
def test_invalid_configuration_fails_fast(box, overrides):
    with pytest.raises(ValueError):
        calm(box, **overrides)


def test_same_seed_gives_same_frames(box, origin):
    a = ParticleSimulation(zone=box, limit=30, lifetime=2.0, brownian_force=0.3, seed=99)
    b = ParticleSimulation(zone=box, limit=30, lifetime=2.0, brownian_force=0.3, seed=99)
    a.attach(origin)
    b.attach(origin)
    for _ in range(10):
        assert np.array_equal(a.tick(0.3), b.tick(0.3))


def test_injected_generator_is_used(box, origin):
    rng = np.random.default_rng(5)
    sim = calm(box, rng=rng, limit=4)
    assert sim.rng is rng
    assert sim.pool.rng is rng


def test_release_disposes_the_sink(box, origin):
    sim = calm(box, limit=3, color='#abc', opacity=0.4, texture='snow.png')
    sim.attach(origin)
    sink = sim.sink
    assert (sink.color, sink.opacity, sink.texture) == ('#abc', 0.4, 'snow.png')
    sim.release()
    assert sink.disposed


def test_from_params(origin):
    sim = ParticleSimulation.from_params({
        "zone": {"position": [0, 0, 100], "size": [500, 500, 200]},
        "creation_zones": [{"position": [0, 0, 195], "size": [500, 500, 10]}],
        "start_velocity": [0.1, -0.1, -0.2],
        "start_size": 2,
        "limit": 25,
        "shrink_over_time": False,
    }, rng=np.random.default_rng(0))
    assert sim.limit == 25
    assert sim.start_velocity.tolist() == [0.1, -0.1, -0.2]
    assert sim.creation_zone_percentage == pytest.approx(0.05)
    assert sim.lifetime == 10
    sim.attach(origin)
    assert sim.tick(1.0).shape == (25, 4, 4)


def test_from_params_requires_zone():
    with pytest.raises(ValueError):
        ParticleSimulation.from_params({"limit": 3})


def test_from_params_rejects_bad_vectors():
    with pytest.raises(ValueError):
        ParticleSimulation.from_params({"zone": {"size": [1, 1, 1]}, "start_velocity": [1, 2]})


def test_tick_after_release_leaves_state_untouched(box, origin):
    sim = calm(box, lifetime=1.0, limit=2)
    sim.attach(origin)
    ages = sim.pool.ages.copy()
    sim.release()
    with pytest.raises(RuntimeError):
        sim.tick(5.0)
    assert sim.live_count == 2
    assert np.array_equal(sim.pool.ages, ages)


def test_from_params_warns_about_unknown_keys(caplog):
    with caplog.at_level(logging.WARNING):
        sim = ParticleSimulation.from_params({
            "zone": {"size": [1, 1, 1]},
            "brownianForce": 0.5,
            "limt": 3,
        })
    assert "brownianForce, limt" in caplog.text
    assert sim.brownian_force == 0.01
