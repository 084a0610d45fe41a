"""
"Magic density": users per square kilometer within a cell or a ring of cells
"""

__all__ = ['DensityEstimator']

from typing import Iterable

import numpy as np

from geoaura.geocell import cell_area_km2
from geoaura.occupancy import OccupancyIndex


class DensityEstimator:
    """
    Computes occupant density from the occupancy index. Areas are the true
    spherical areas of the cells passed in, so a coarsened cell is measured at
    its own (larger) size.
    """

    @staticmethod
    def _ratio(occupants: int, area_km2: float) -> float:
        if occupants <= 0 or area_km2 <= 0:
            return 0.0
        return occupants / area_km2

    def estimate(self, cell_id: str, occupancy_index: OccupancyIndex) -> float:
        """
        Density within a single cell.

        Args:
            cell_id:
                Any cell, at any resolution

            occupancy_index:
                The live occupancy index

        Returns:
            (float) users per square km; 0.0 for empty or degenerate cells

        Raises:
            InvalidCell: if the cell id is malformed
        """
        area = cell_area_km2(cell_id)
        return self._ratio(occupancy_index.count_in(cell_id), area)

    def estimate_area(
        self,
        cells: Iterable[str],
        occupancy_index: OccupancyIndex,
        exclude: Iterable[str] = (),
    ) -> float:
        """
        Density over a group of cells (e.g. every ring within a search radius),
        counting each distinct occupant once.

        Args:
            cells:
                Non-overlapping cells, of one resolution

            occupancy_index:
                The live occupancy index

            exclude: (Default ())
                Users left out of the count, typically the querying user

        Returns:
            (float) users per square km; 0.0 for an empty group
        """
        cells = list(cells)
        if not cells:
            return 0.0

        total_area = float(np.sum([cell_area_km2(x) for x in cells]))
        occupants = set(occupancy_index.occupants(cells)).difference(exclude)
        return self._ratio(len(occupants), total_area)
