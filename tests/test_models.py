import pickle

from geoaura import (
    AuraState, DistanceTier, InterestDirectory, LOW_DENSITY_CELL, LowDensityCell,
    NearbyResponse, NearbyResult, Trend
)
from geoaura.exceptions import is_low_density


def test_distance_tier_rank():
    assert sorted(DistanceTier, key=lambda x: x.rank) == [
        DistanceTier.SAME, DistanceTier.NEAR, DistanceTier.FAR
    ]


def test_aura_state():
    state = AuraState(10.)
    assert state.target_radius_km == 10.
    assert state.trend == Trend.STABLE
    assert repr(state) == '<AuraState stable 10.000km -> 10.000km @ 0.000/km2>'

    copy = state.copy()
    assert copy == state
    assert copy is not state

    copy.empty_streak = 2
    assert copy != state
    assert state != 10.


def test_low_density_cell():
    assert LowDensityCell() is LOW_DENSITY_CELL
    assert pickle.loads(pickle.dumps(LOW_DENSITY_CELL)) is LOW_DENSITY_CELL
    assert not LOW_DENSITY_CELL
    assert is_low_density(LOW_DENSITY_CELL)
    assert not is_low_density('gcpv')
    assert not is_low_density(None)


def test_nearby_response_json():
    response = NearbyResponse(
        results=[NearbyResult(user_id='bob', distance_tier=DistanceTier.NEAR, cell_id='gcpvj0d')],
        radius_km=12.5,
        state=Trend.EXPANDING,
    )
    assert response.model_dump(mode='json') == {
        'results': [{'user_id': 'bob', 'distance_tier': 'near', 'cell_id': 'gcpvj0d'}],
        'radius_km': 12.5,
        'state': 'expanding',
        'partial': False,
    }


def test_interest_directory():
    directory = InterestDirectory()
    assert directory.get_interests('bob') == frozenset()

    directory.set_interests('bob', ['music', 'music', 'film'])
    assert directory.get_interests('bob') == frozenset({'music', 'film'})

    directory.remove('bob')
    directory.remove('bob')
    assert directory.get_interests('bob') == frozenset()
