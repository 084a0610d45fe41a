import math

import pytest
from pytest import approx

from geoaura import ElasticRadiusController, InvalidCell, ProximityConfig, StateNotFound, Trend
from geoaura.controller import AuraStore, relevance_coefficient, seed_radius
from geoaura.models import AuraState

from tests.functions import FakeClock


def _controller(clock=None, **kwargs):
    config = ProximityConfig(**kwargs)
    return ElasticRadiusController(config, clock=clock or FakeClock(0.))


def test_relevance_coefficient():
    assert relevance_coefficient(['music'], []) == 0.5
    assert relevance_coefficient(['music', 'art'], [['music', 'art']]) == 1.5
    assert relevance_coefficient(['music', 'art'], [['music', 'art'], ['sport']]) == 1.0
    assert relevance_coefficient(['music'], [['music', 'art']]) == 1.0
    assert relevance_coefficient([], [[], []]) == 0.5


def test_seed_radius():
    config = ProximityConfig(min_radius_km=5., max_radius_km=100., damping=0.15)
    assert seed_radius(0, 1.0, config) == 100.
    assert seed_radius(10, 1.0, config) == approx(5 + 95 * math.exp(-1.5))

    # More people, and more like-minded people, start smaller
    assert seed_radius(20, 1.0, config) < seed_radius(10, 1.0, config)
    assert seed_radius(10, 1.5, config) < seed_radius(10, 0.5, config)
    assert seed_radius(10_000, 1.5, config) == approx(5.)


def test_aura_store():
    store = AuraStore()
    with pytest.raises(StateNotFound):
        store.get('alice')

    state = AuraState(10., last_updated_at=5.)
    store.put('alice', state)
    assert 'alice' in store
    assert len(store) == 1

    # Reads are copies
    copy = store.get('alice')
    copy.current_radius_km = 50.
    assert store.get('alice').current_radius_km == 10.

    store.put('bob', AuraState(10., last_updated_at=20.))
    assert store.expire(older_than=10.) == 1
    assert 'alice' not in store
    assert store.discard('bob')
    assert not store.discard('bob')


def test_state_not_found():
    controller = _controller()
    with pytest.raises(StateNotFound):
        controller.state('alice')

    # Still a KeyError for callers that only know the builtins
    with pytest.raises(KeyError):
        controller.state('alice')


def test_ensure():
    controller = _controller(min_radius_km=5., max_radius_km=100.)
    state = controller.ensure('alice', seed=40.)
    assert state.current_radius_km == 40.
    assert state.target_radius_km == 40.
    assert state.trend == Trend.STABLE

    # Seeds only apply to new users
    assert controller.ensure('alice', seed=80.).current_radius_km == 40.

    # Out-of-range seeds are clamped; no seed starts at the minimum
    assert controller.ensure('bob', seed=500.).current_radius_km == 100.
    assert controller.ensure('carol').current_radius_km == 5.


def test_step_transitions():
    controller = _controller(
        min_radius_km=5., max_radius_km=100., density_band=(2., 8.),
        shrink_factor=0.8, grow_factor=1.5, smoothing_factor=0.5,
    )
    state = AuraState(50.)

    contracting = controller.step(state, 20.)
    assert contracting.trend == Trend.CONTRACTING
    assert contracting.target_radius_km == 40.
    assert contracting.current_radius_km == 45.
    assert contracting.density == 20.

    expanding = controller.step(state, 1.)
    assert expanding.trend == Trend.EXPANDING
    assert expanding.target_radius_km == 75.
    assert expanding.current_radius_km == 62.5

    stable = controller.step(state, 5.)
    assert stable.trend == Trend.STABLE
    assert stable.current_radius_km == 50.

    # Band edges are inside the band
    assert controller.step(state, 2.).trend == Trend.STABLE
    assert controller.step(state, 8.).trend == Trend.STABLE

    # The input state is untouched
    assert state == AuraState(50.)


def test_step_bounds():
    controller = _controller(min_radius_km=5., max_radius_km=100.)
    assert controller.step(AuraState(5.), 1000.).target_radius_km == 5.
    assert controller.step(AuraState(90.), 1.).target_radius_km == 100.


def test_radius_convergence():
    controller = _controller(
        min_radius_km=5., max_radius_km=100., density_band=(2., 8.),
        smoothing_factor=0.5, convergence_epsilon_km=0.05,
    )
    controller.ensure('alice', seed=50.)

    for _ in range(60):
        state = controller.observe('alice', 100.)
    assert state.current_radius_km == 5.
    assert state.target_radius_km == 5.

    for _ in range(5):
        state = controller.observe('alice', 100.)
        assert abs(state.current_radius_km - state.target_radius_km) <= 0.05

    for _ in range(60):
        state = controller.observe('alice', 0.5)
    assert state.current_radius_km == 100.
    assert state.trend == Trend.EXPANDING


def test_smoothing_never_jumps():
    controller = _controller(smoothing_factor=0.25)
    controller.ensure('alice', seed=50.)
    previous = 50.
    for density in (100., 100., 0.5, 0.5, 5., 100.):
        state = controller.observe('alice', density)
        assert abs(state.current_radius_km - previous) <= abs(state.target_radius_km - previous)
        previous = state.current_radius_km


def test_tunneling_after_consecutive_empty():
    controller = _controller(max_radius_km=100., tunneling_after=3)
    controller.ensure('alice', seed=100.)

    assert controller.observe('alice', 0.).trend == Trend.EXPANDING
    assert controller.observe('alice', 0.).trend == Trend.EXPANDING
    state = controller.observe('alice', 0.)
    assert state.trend == Trend.TUNNELING
    assert state.empty_streak == 3

    # Radius never grows past the maximum
    for _ in range(5):
        state = controller.observe('alice', 0.)
        assert state.trend == Trend.TUNNELING
        assert state.current_radius_km == 100.

    # Anyone reachable ends tunneling
    state = controller.observe('alice', 5.)
    assert state.trend == Trend.STABLE
    assert state.empty_streak == 0


def test_empty_below_max_expands():
    controller = _controller(max_radius_km=100., tunneling_after=1)
    controller.ensure('alice', seed=20.)

    state = controller.observe('alice', 0.)
    assert state.trend == Trend.EXPANDING
    assert state.empty_streak == 0
    assert state.target_radius_km == 30.


def test_observe_failure_holds_radius(caplog):
    controller = _controller()
    controller.ensure('alice', seed=42.)

    def failing():
        raise InvalidCell('bad cell')

    state = controller.observe('alice', failing)
    assert state.current_radius_km == 42.
    assert state.trend == Trend.STABLE
    assert 'density estimate failed for user alice' in caplog.text
    assert 'InvalidCell' in caplog.text

    def dividing():
        return 1 / 0

    assert controller.observe('alice', dividing).current_radius_km == 42.

    # Unexpected errors are not swallowed
    def broken():
        raise RuntimeError('boom')

    with pytest.raises(RuntimeError):
        controller.observe('alice', broken)


def test_observe_callable_and_seed():
    clock = FakeClock(10.)
    controller = _controller(clock=clock)
    state = controller.observe('alice', lambda: 5., seed=30.)
    assert state.current_radius_km == 30.
    assert state.last_updated_at == 10.
    assert controller.state('alice') == state


def test_end_session_and_expiry():
    clock = FakeClock(0.)
    controller = _controller(clock=clock, aura_ttl_s=60.)
    controller.ensure('alice')
    controller.ensure('bob')

    assert controller.end_session('alice')
    assert not controller.end_session('alice')

    clock.advance(30.)
    assert controller.expire_idle() == 0
    clock.advance(31.)
    assert controller.expire_idle() == 1
    with pytest.raises(StateNotFound):
        controller.state('bob')
