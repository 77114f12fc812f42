import numpy as np
import pytest

from transform import ParentTransform
from volume import Volume


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def box():
    return Volume((0, 0, 0), (10, 10, 10))


@pytest.fixture
def origin():
    return ParentTransform()
