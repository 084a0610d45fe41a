"""
K-anonymity enforcement for disclosed cells.

A cell may only be disclosed once at least K distinct users are indexed within
it. Under-populated cells are coarsened to their ancestors until they qualify;
if none within the permitted depth does, the LOW_DENSITY_CELL sentinel is
returned instead, so a lone occupant is indistinguishable from an empty area.
"""

__all__ = ['AnonymityResolver']

from typing import Dict, Iterable, Optional, Union

from geoaura._const import MIN_RESOLUTION
from geoaura.exceptions import LOW_DENSITY_CELL, LowDensityCell
from geoaura.geocell import validate_cell
from geoaura.occupancy import OccupancyIndex
from geoaura.utils.mixins import LoggingMixin

ResolvedCell = Union[str, LowDensityCell]


class AnonymityResolver(LoggingMixin):
    """
    Resolves cells to their smallest K-anonymous ancestor.

    Args:
        max_coarsening_depth: (Default 4)
            How many resolution levels a cell may be coarsened

        min_resolution: (Default 1)
            Never coarsen past this resolution, whatever the depth allows
    """

    def __init__(self, max_coarsening_depth: int = 4, min_resolution: int = MIN_RESOLUTION):
        super().__init__()
        if max_coarsening_depth < 0:
            raise ValueError('max_coarsening_depth must be non-negative')

        self.max_coarsening_depth = max_coarsening_depth
        self.min_resolution = max(MIN_RESOLUTION, min_resolution)

    def resolve(self, cell_id: str, occupancy_index: OccupancyIndex, k: int) -> ResolvedCell:
        """
        Find the effective (disclosable) cell for a cell.

        Args:
            cell_id:
                The cell to disclose

            occupancy_index:
                The live occupancy index; read only

            k:
                The minimum anonymity-set size

        Returns:
            The cell itself or its nearest ancestor holding at least `k` distinct
            occupants, or LOW_DENSITY_CELL
        """
        validate_cell(cell_id)
        if k < 1:
            raise ValueError(f'k must be at least 1, not {k}')

        floor = max(self.min_resolution, len(cell_id) - self.max_coarsening_depth)
        candidate = cell_id
        while True:
            if occupancy_index.count_in(candidate) >= k:
                if candidate != cell_id:
                    self.logger.debug(
                        'coarsened a resolution %d cell to resolution %d',
                        len(cell_id), len(candidate)
                    )
                return candidate

            if len(candidate) <= floor:
                return LOW_DENSITY_CELL

            candidate = candidate[:-1]

    def resolve_many(
        self,
        cells: Iterable[str],
        occupancy_index: OccupancyIndex,
        k: int,
        memo: Optional[Dict[str, ResolvedCell]] = None,
    ) -> Dict[str, ResolvedCell]:
        """
        Resolve several cells, resolving each distinct cell only once.

        Args:
            cells:
                The cells to resolve

            occupancy_index:
                The live occupancy index

            k:
                The minimum anonymity-set size

            memo: (Default None)
                A dict of prior resolutions to reuse and extend

        Returns:
            A dict of each input cell to its resolution
        """
        memo = {} if memo is None else memo
        for cell_id in cells:
            if cell_id not in memo:
                memo[cell_id] = self.resolve(cell_id, occupancy_index, k)
        return memo
