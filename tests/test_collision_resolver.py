import math

import numpy as np
import pytest

from collision_detector import detect
from collision_resolver import resolve, resolve_contacts
from particle_store import ParticleStore
from spatial_grid import SpatialGrid


def pair(mass_a=1.0, mass_b=1.0, restitution=1.0, a=(50.0, 50.0), b=(65.0, 50.0)):
    store = ParticleStore()
    handle_a = store.insert(a[0], a[1], 10.0, mass_a, restitution)
    handle_b = store.insert(b[0], b[1], 10.0, mass_b, restitution)
    return store, handle_a, handle_b


def displacement(store, handle, before):
    return np.array(store.get(handle).position) - np.array(before)


def test_equal_masses_get_equal_and_opposite_corrections():
    store, a, b = pair()
    before_a, before_b = store.get(a).position, store.get(b).position

    assert resolve(store, a, b, (-1.0, 0.0), 5.0)

    delta_a = displacement(store, a, before_a)
    delta_b = displacement(store, b, before_b)
    assert delta_a.tolist() == pytest.approx([-2.5, 0.0])
    assert np.array_equal(delta_a, -delta_b)
    assert store.get(b).position[0] - store.get(a).position[0] == pytest.approx(20.0)


def test_correction_is_scaled_by_the_smaller_restitution():
    store, a, b = pair()
    store.get_mut(b).restitution = 0.5

    resolve(store, a, b, (-1.0, 0.0), 4.0)

    assert store.get(a).position[0] == pytest.approx(49.0)
    assert store.get(b).position[0] == pytest.approx(66.0)


def test_correction_is_split_by_inverse_mass():
    store, a, b = pair(mass_a=1.0, mass_b=3.0)

    resolve(store, a, b, (-1.0, 0.0), 4.0)

    # The lighter ball takes three quarters of the separation
    assert store.get(a).position[0] == pytest.approx(47.0)
    assert store.get(b).position[0] == pytest.approx(66.0)


def test_static_anchor_is_never_displaced():
    store, a, b = pair(mass_b=math.inf)

    resolve(store, a, b, (-1.0, 0.0), 5.0)

    assert store.get(a).position[0] == pytest.approx(45.0)
    assert store.get(b).position == (65.0, 50.0)


def test_two_static_anchors_are_skipped():
    store, a, b = pair(mass_a=math.inf, mass_b=math.inf)
    assert not resolve(store, a, b, (-1.0, 0.0), 5.0)
    assert store.get(a).position == (50.0, 50.0)


def test_coincident_centers_are_skipped():
    store, a, b = pair(b=(50.0, 50.0))
    assert not resolve(store, a, b, (1.0, 0.0), 20.0)
    assert store.get(a).position == (50.0, 50.0)
    assert store.get(b).position == (50.0, 50.0)


def test_same_or_stale_handles_are_rejected():
    store, a, b = pair()
    assert not resolve(store, a, a, (-1.0, 0.0), 5.0)
    store.remove(b)
    assert not resolve(store, a, b, (-1.0, 0.0), 5.0)
    assert store.get(a).position == (50.0, 50.0)


def test_positional_correction_changes_implicit_velocity_only_through_position():
    store, a, b = pair()
    resolve(store, a, b, (-1.0, 0.0), 5.0)
    assert store.get(a).previous_position == (50.0, 50.0)
    assert store.get(a).velocity == pytest.approx((-2.5, 0.0))


def test_impulse_response_reflects_approaching_velocity():
    store = ParticleStore()
    a = store.insert(50.0, 50.0, 10.0, 1.0, 0.2, previous=(48.0, 50.0))
    b = store.insert(65.0, 50.0, 10.0, 1.0, 0.2, previous=(67.0, 50.0))

    assert resolve(store, a, b, (-1.0, 0.0), 5.0, impulse_response=True)

    va = store.get(a).velocity
    vb = store.get(b).velocity
    assert store.get(a).position[0] == pytest.approx(49.5)
    assert store.get(b).position[0] == pytest.approx(65.5)
    # Relative normal speed of 3 comes out reversed and scaled by 0.2
    assert va[0] == pytest.approx(-0.3)
    assert vb[0] == pytest.approx(0.3)
    assert va[0] + vb[0] == pytest.approx(0.0)


def test_without_impulse_response_history_is_untouched():
    store = ParticleStore()
    a = store.insert(50.0, 50.0, 10.0, 1.0, 0.2, previous=(48.0, 50.0))
    b = store.insert(65.0, 50.0, 10.0, 1.0, 0.2, previous=(67.0, 50.0))

    resolve(store, a, b, (-1.0, 0.0), 5.0)

    assert store.get(a).previous_position == (48.0, 50.0)
    assert store.get(b).previous_position == (67.0, 50.0)


def test_resolve_contacts_applies_a_detected_set():
    store = ParticleStore()
    handles = [store.insert(x, 100.0, 10.0, 1.0, 1.0) for x in (100.0, 115.0, 130.0)]
    grid = SpatialGrid(20.0, 640.0, 480.0)
    grid.rebuild((h, p.position, p.radius) for h, p in store)
    contacts = detect(grid, store)
    assert len(contacts) == 2

    assert resolve_contacts(store, contacts) == 2

    # Contacts apply in order: (0, 1) first, then (1, 2) with its detected depth
    xs = [store.get(h).position[0] for h in handles]
    assert xs == pytest.approx([97.5, 115.0, 132.5])
