import numpy as np
import pytest

from boundary import clamp, clamp_arrays, clamp_slots
from particle_store import ParticleStore

WIDTH, HEIGHT = 640.0, 480.0


def test_floor_contact_reflects_velocity_scaled_by_restitution():
    store = ParticleStore()
    handle = store.insert(100.0, 475.0, 10.0, 1.0, 0.5, previous=(100.0, 465.0))

    assert clamp(store.get_mut(handle), WIDTH, HEIGHT)

    particle = store.get(handle)
    assert particle.position == (100.0, 470.0)
    assert particle.velocity[0] == 0.0
    assert particle.velocity[1] == pytest.approx(-5.0)


def test_left_wall_contact():
    store = ParticleStore()
    handle = store.insert(3.0, 100.0, 5.0, 1.0, 1.0, previous=(7.0, 100.0))

    clamp(store.get_mut(handle), WIDTH, HEIGHT)

    particle = store.get(handle)
    assert particle.position == (5.0, 100.0)
    assert particle.velocity == pytest.approx((4.0, 0.0))


def test_corner_contact_reflects_both_axes():
    positions = np.array([[642.0, -1.0]])
    previous = np.array([[640.0, 1.0]])
    radii = np.array([2.0])
    restitutions = np.array([1.0])

    contacts = clamp_arrays(positions, previous, radii, restitutions, WIDTH, HEIGHT)

    assert contacts == 2
    assert positions.tolist() == [[638.0, 2.0]]
    assert (positions - previous)[0].tolist() == pytest.approx([-2.0, 2.0])


def test_zero_restitution_stops_on_the_wall():
    store = ParticleStore()
    handle = store.insert(100.0, 479.0, 10.0, 1.0, 0.0, previous=(100.0, 470.0))

    clamp(store.get_mut(handle), WIDTH, HEIGHT)

    assert store.get(handle).position == (100.0, 470.0)
    assert store.get(handle).velocity == (0.0, 0.0)


def test_inside_particles_are_untouched():
    store = ParticleStore()
    handles = [
        store.insert(100.0, 100.0, 10.0, 1.0, 0.5, previous=(99.0, 98.0)),
        store.insert(10.0, 470.0, 10.0, 1.0, 0.5, previous=(10.0, 469.0)),
    ]
    before = [store.get(h) for h in handles]

    assert clamp_slots(store, store.active_slots(), WIDTH, HEIGHT) == 0
    assert [store.get(h) for h in handles] == before


def test_static_anchor_on_the_wall_is_left_alone():
    store = ParticleStore()
    anchor = store.insert(2.0, 100.0, 5.0, np.inf, 1.0)
    ball = store.insert(3.0, 200.0, 5.0, 1.0, 1.0)

    assert clamp_slots(store, store.active_slots(), WIDTH, HEIGHT) == 1
    assert not clamp(store.get_mut(anchor), WIDTH, HEIGHT)

    assert store.get(anchor).position == (2.0, 100.0)
    assert store.get(ball).position == (5.0, 200.0)
