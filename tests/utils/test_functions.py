import pytest

from geoaura.utils.functions import *


def test_clamp():
    assert clamp(5., 1., 10.) == 5.
    assert clamp(-5., 1., 10.) == 1.
    assert clamp(50., 1., 10.) == 10.
    assert clamp(3., 3., 3.) == 3.

    with pytest.raises(ValueError):
        clamp(5., 10., 1.)


def test_round_half_up():
    assert round_half_up(1.59, 1) == 1.6
    assert round_half_up(1.51, 1) == 1.5
    assert round_half_up(1.55, 1) == 1.6
    assert round_half_up(1.65, 1) == 1.7

    assert round_half_up(-1.59, 1) == -1.6
    assert round_half_up(-1.51, 1) == -1.5
    assert round_half_up(-1.55, 1) == -1.5
    assert round_half_up(-1.65, 1) == -1.6
