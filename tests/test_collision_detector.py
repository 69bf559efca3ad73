import pytest

from collision_detector import FALLBACK_NORMAL, Contact, detect
from particle_store import ParticleStore
from spatial_grid import SpatialGrid


def detect_points(points, radius=10.0):
    store = ParticleStore()
    handles = [store.insert(x, y, radius, 1.0, 1.0) for x, y in points]
    grid = SpatialGrid(2.0 * radius, 640.0, 480.0)
    grid.rebuild((h, p.position, p.radius) for h, p in store)
    return detect(grid, store), handles


def test_overlapping_pair_reports_normal_and_penetration():
    contacts, (a, b) = detect_points([(50.0, 50.0), (65.0, 50.0)])

    assert len(contacts) == 1
    contact = contacts[0]
    assert isinstance(contact, Contact)
    assert (contact.handle_a, contact.handle_b) == (a, b)
    assert contact.penetration == pytest.approx(5.0)
    # Points from b towards a
    assert contact.normal == pytest.approx((-1.0, 0.0))
    assert contact.distance_sq == pytest.approx(225.0)


def test_touching_pair_counts_as_contact():
    contacts, _ = detect_points([(50.0, 50.0), (70.0, 50.0)])
    assert len(contacts) == 1
    assert contacts[0].penetration == pytest.approx(0.0)


def test_separated_candidates_are_filtered_out():
    # Same grid neighbourhood, but 21 apart
    contacts, _ = detect_points([(50.0, 50.0), (71.0, 50.0)])
    assert len(contacts) == 0
    assert list(contacts) == []
    assert contacts.max_penetration == 0.0


def test_coincident_centers_use_fallback_normal():
    contacts, _ = detect_points([(100.0, 100.0), (100.0, 100.0)])

    assert len(contacts) == 1
    assert contacts[0].normal == FALLBACK_NORMAL
    assert contacts[0].penetration == pytest.approx(20.0)
    assert contacts[0].distance_sq == 0.0


def test_diagonal_normal_is_unit_length():
    contacts, _ = detect_points([(100.0, 100.0), (106.0, 108.0)])
    nx, ny = contacts[0].normal
    assert (nx, ny) == pytest.approx((-0.6, -0.8))
    assert contacts[0].penetration == pytest.approx(10.0)


def test_contacts_are_in_ascending_index_order():
    points = [(100.0, 100.0), (300.0, 300.0), (112.0, 100.0), (310.0, 300.0), (106.0, 110.0)]
    contacts, _ = detect_points(points)

    keys = [(c.handle_a.index, c.handle_b.index) for c in contacts]
    assert keys == [(0, 2), (0, 4), (1, 3), (2, 4)]
    assert contacts.max_penetration == pytest.approx(10.0)
