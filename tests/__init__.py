from geoaura import Coordinate


def _coordinate_strings(coord: Coordinate):
    for value in coord.to_float():
        yield repr(value)
        yield f'{value:.4f}'
        yield f'{value:.3f}'


def assert_no_coordinates(text: str, *coords: Coordinate):
    """Asserts that no rendering of the given coordinates appears in a string"""
    for coord in coords:
        for rendered in _coordinate_strings(coord):
            assert rendered not in text, rendered
