import pytest
from pytest import approx
from pydantic import ValidationError

from geoaura import Coordinate, InvalidCell, InvalidCoordinate
from geoaura.geocell import *

from tests.functions import BERLIN, LONDON, SOUTH_PACIFIC


def test_encode():
    # Reference values from the geohash literature
    assert encode(Coordinate(-5.6, 42.6), 5) == 'ezs42'
    assert encode(Coordinate(10.40744, 57.64911), 11) == 'u4pruydqqvj'

    with pytest.raises(InvalidCell):
        encode(Coordinate(0., 0.), 0)

    with pytest.raises(InvalidCell):
        encode(Coordinate(0., 0.), 13)


def test_encode_mapping():
    assert encode({'latitude': 42.6, 'longitude': -5.6}, 5) == 'ezs42'

    with pytest.raises(InvalidCoordinate) as exc:
        encode({'latitude': 51.50721}, 7)
    assert '51.50721' not in str(exc.value)

    with pytest.raises(InvalidCoordinate) as exc:
        encode({'latitude': 91.50721, 'longitude': -0.12761}, 7)
    assert '91.50721' not in str(exc.value)
    assert '-0.12761' not in str(exc.value)

    # Neither a Coordinate nor a mapping: rejected without echoing the input
    with pytest.raises(ValidationError) as exc:
        encode((-0.12761, 51.50721), 7)
    assert '51.50721' not in str(exc.value)
    assert '-0.12761' not in str(exc.value)


def test_encode_resolution_monotonic():
    for coord in (LONDON, BERLIN, SOUTH_PACIFIC, Coordinate(179.9999, -89.9999)):
        finest = encode(coord, 12)
        for resolution in range(1, 13):
            assert encode(coord, resolution) == finest[:resolution]
            assert parent(finest, resolution) == encode(coord, resolution)


def test_decode_bounds():
    min_lon, min_lat, max_lon, max_lat = decode_bounds('ezs42')
    assert min_lon <= -5.6 <= max_lon
    assert min_lat <= 42.6 <= max_lat
    assert decode_bounds('s') == (0., 0., 45., 45.)

    # Every coordinate falls within the cell it encodes to
    for coord in (LONDON, BERLIN, SOUTH_PACIFIC):
        for resolution in (1, 4, 7, 10):
            min_lon, min_lat, max_lon, max_lat = decode_bounds(encode(coord, resolution))
            assert min_lon <= coord.longitude <= max_lon
            assert min_lat <= coord.latitude <= max_lat


def test_approx_center():
    assert approx_center('s') == Coordinate(22.5, 22.5)
    center = approx_center('ezs42')
    assert center.longitude == approx(-5.603, abs=1e-3)
    assert center.latitude == approx(42.605, abs=1e-3)


def test_validate_cell():
    assert validate_cell('u33d') == 'u33d'

    with pytest.raises(InvalidCell):
        validate_cell('')

    with pytest.raises(InvalidCell):
        # 'a' is not in the geohash alphabet
        validate_cell('u33a')

    with pytest.raises(InvalidCell):
        validate_cell('u33dc0u33dc0u')

    with pytest.raises(InvalidCell):
        validate_cell(1234)


def test_parent():
    assert parent('gcpvj0d') == 'gcpvj0'
    assert parent('gcpvj0d', 3) == 'gcp'
    assert parent('gcpvj0d', 7) == 'gcpvj0d'

    with pytest.raises(InvalidCell):
        parent('gcp', 4)

    with pytest.raises(InvalidCell):
        parent('g')

    assert resolution_of('gcpvj0d') == 7
    assert is_ancestor('gcp', 'gcpvj0d')
    assert is_ancestor('gcpvj0d', 'gcpvj0d')
    assert not is_ancestor('gcq', 'gcpvj0d')


def test_neighbors():
    cell = encode(LONDON, 7)
    adjacent = neighbors(cell)
    assert len(adjacent) == 8
    assert cell not in adjacent
    assert all(len(x) == 7 for x in adjacent)
    assert all(ring_distance(cell, x) == 1 for x in adjacent)

    # Neighbourhood is symmetric
    assert all(cell in neighbors(x) for x in adjacent)

    # Known neighbours of 's' at resolution 1
    assert neighbors('s') == {'7', 'e', 'g', 'k', 'm', 't', 'u', 'v'}


def test_neighbors_poles():
    cell = encode(Coordinate(0., 89.99), 3)
    adjacent = neighbors(cell)
    assert len(adjacent) == 5
    assert all(ring_distance(cell, x) == 1 for x in adjacent)


def test_neighbors_antimeridian():
    east = encode(Coordinate(179.99, 0.), 4)
    west = encode(Coordinate(-179.99, 0.), 4)
    assert west in neighbors(east)
    assert east in neighbors(west)
    assert ring_distance(east, west) == 1


def test_ring():
    cell = encode(BERLIN, 6)
    assert ring(cell, 0) == {cell}
    assert len(ring(cell, 1)) == 8
    assert len(ring(cell, 2)) == 16
    assert all(ring_distance(cell, x) == 2 for x in ring(cell, 2))

    with pytest.raises(ValueError):
        ring(cell, -1)


def test_rings():
    cell = encode(BERLIN, 6)
    groups = rings(cell, 3)
    assert len(groups) == 4
    assert groups[0] == {cell}
    assert [len(x) for x in groups] == [1, 8, 16, 24]

    # Rings are disjoint
    seen = set()
    for group in groups:
        assert not seen & group
        seen |= group


def test_ring_distance():
    cell = encode(LONDON, 7)
    assert ring_distance(cell, cell) == 0
    far = sorted(ring(cell, 3))[0]
    assert ring_distance(cell, far) == 3
    assert ring_distance(far, cell) == 3

    with pytest.raises(InvalidCell):
        ring_distance(cell, cell[:6])


def test_cell_area_km2():
    # Children tile their parent exactly
    parent_cell = encode(LONDON, 4)
    children = [parent_cell + x for x in '0123456789bcdefghjkmnpqrstuvwxyz']
    assert sum(cell_area_km2(x) for x in children) == approx(cell_area_km2(parent_cell))

    # Cells shrink toward the poles
    assert cell_area_km2(encode(Coordinate(0., 80.), 5)) < cell_area_km2(encode(Coordinate(0., 0.), 5))


def test_cell_extent_km():
    width, height = cell_extent_km(encode(Coordinate(0.01, 0.01), 5))
    assert width == approx(4.89, abs=0.01)
    assert height == approx(4.89, abs=0.01)


def test_search_resolution():
    # A tiny radius fits in one ring at the finest resolution
    assert search_resolution(0.01, 51.5, 7, 4) == (7, 1)

    resolution, needed = search_resolution(5., 51.5, 7, 4)
    assert resolution < 7
    assert 1 <= needed <= 4

    # One level finer would take too many rings
    width, height = cell_extent_km(encode(LONDON, resolution + 1))
    assert max(5. / width, 5. / height) > 4

    # Radii beyond the coarsest resolution are bounded by max_rings
    assert search_resolution(50_000., 0., 7, 4) == (1, 4)

    # Polar latitudes still terminate
    resolution, needed = search_resolution(100., 90., 7, 4)
    assert needed <= 4

    with pytest.raises(ValueError):
        search_resolution(5., 0., 7, 0)
