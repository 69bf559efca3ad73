import numpy as np
import pytest

from simulation import Simulation

BASE_CONFIG = {
    'width': 640,
    'height': 480,
    'gravity': [0.0, 30.0],
    'damping': 0.99,
    'substeps': 8,
    'max_radius': 10.0,
    'dt': 1.0 / 60.0,
}


@pytest.fixture
def make_sim():
    def factory(**overrides):
        config = dict(BASE_CONFIG)
        config.update(overrides)
        return Simulation(config)
    return factory


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
