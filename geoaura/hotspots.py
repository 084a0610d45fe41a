"""
Versioned table of hotspot cells: globally known, high-occupancy cells used as
the fallback candidate set while a user's aura is tunneling.
"""

from __future__ import annotations

__all__ = ['HotspotSnapshot', 'HotspotTable']

import json
from pathlib import Path
import threading
from typing import Iterable, List, NamedTuple, Optional, Tuple, Union

from geoaura.calc import haversine_distance
from geoaura.geocell import approx_center, validate_cell
from geoaura.occupancy import OccupancyIndex
from geoaura.utils.mixins import LoggingMixin


class HotspotSnapshot(NamedTuple):
    version: int
    cells: Tuple[str, ...]


class HotspotTable(LoggingMixin):
    """
    Reloadable hotspot table. Readers always see one complete version: a reload
    swaps the whole snapshot at once.

    Args:
        cells: (Default ())
            The initial hotspot cells

        version: (Default 0)
            The version of the initial table

        max_resolution: (Default None)
            The resolution users are indexed at. Finer cells can never have
            occupants; they are dropped with a warning.
    """

    def __init__(
        self,
        cells: Iterable[str] = (),
        version: int = 0,
        max_resolution: Optional[int] = None,
    ):
        super().__init__()
        self._lock = threading.Lock()
        self.max_resolution = max_resolution
        self._snapshot = HotspotSnapshot(version, self._clean(cells))

    def __len__(self) -> int:
        return len(self._snapshot.cells)

    def __repr__(self):
        return f'<HotspotTable v{self._snapshot.version} with {len(self)} cells>'

    def _clean(self, cells: Iterable[str]) -> Tuple[str, ...]:
        # Validated and de-duplicated, first occurrence wins
        out = dict.fromkeys(validate_cell(x) for x in cells)
        if self.max_resolution is None:
            return tuple(out)

        for cell_id in [x for x in out if len(x) > self.max_resolution]:
            self.warn_once(
                f'ignoring hotspot cell {cell_id}: finer than the indexed '
                f'resolution {self.max_resolution}'
            )
            del out[cell_id]

        return tuple(out)

    @property
    def version(self) -> int:
        return self._snapshot.version

    @property
    def cells(self) -> Tuple[str, ...]:
        return self._snapshot.cells

    def snapshot(self) -> HotspotSnapshot:
        return self._snapshot

    def reload(self, cells: Iterable[str], version: Optional[int] = None) -> HotspotSnapshot:
        """
        Replace the table contents.

        Args:
            cells:
                The new hotspot cells

            version: (Default None)
                The version of the new table. Must be newer than the current one;
                if not provided, the current version plus one.

        Returns:
            The new snapshot

        Raises:
            ValueError: if `version` is not newer than the loaded version
            InvalidCell: if any cell id is malformed
        """
        cleaned = self._clean(cells)
        with self._lock:
            current = self._snapshot.version
            if version is None:
                version = current + 1
            elif version <= current:
                raise ValueError(
                    f'hotspot table version {version} is not newer than loaded version {current}'
                )
            self._snapshot = HotspotSnapshot(version, cleaned)

        self.logger.info('loaded hotspot table v%d (%d cells)', version, len(cleaned))
        return self._snapshot

    @classmethod
    def from_json(
        cls,
        path: Union[str, Path],
        max_resolution: Optional[int] = None,
    ) -> 'HotspotTable':
        """
        Create a table from a JSON file shaped like
        {"version": 3, "cells": ["u33d", "u33e"]}
        """
        version, cells = cls._read_json(path)
        return cls(cells, version, max_resolution)

    def load_json(self, path: Union[str, Path]) -> HotspotSnapshot:
        """Reload the table from a JSON file (see `from_json`)"""
        version, cells = self._read_json(path)
        return self.reload(cells, version)

    @staticmethod
    def _read_json(path: Union[str, Path]) -> Tuple[Optional[int], List[str]]:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, dict) or not isinstance(data.get('cells'), list):
            raise ValueError('hotspot file must be a JSON object with a "cells" list')

        return data.get('version'), data['cells']

    def derive_from_index(
        self,
        occupancy_index: OccupancyIndex,
        resolution: int,
        limit: int,
        min_occupants: int = 1,
    ) -> HotspotSnapshot:
        """
        Rebuild the table from the most populated cells currently in the index.

        Args:
            occupancy_index:
                The live occupancy index

            resolution:
                The resolution of the hotspot cells

            limit:
                The most hotspot cells to keep

            min_occupants: (Default 1)
                Cells with fewer occupants are not hotspots

        Returns:
            The new snapshot
        """
        ranked = occupancy_index.top_cells(resolution, limit)
        return self.reload(cell for cell, count in ranked if count >= min_occupants)

    def nearest(self, cell_id: str, limit: Optional[int] = None) -> List[str]:
        """
        Hotspot cells ordered by distance from a cell (center to center), nearest
        first; ties ordered by cell id.
        """
        origin = approx_center(cell_id)
        ranked = sorted(
            self._snapshot.cells,
            key=lambda x: (haversine_distance(origin, approx_center(x)), x)
        )
        return ranked if limit is None else ranked[:limit]
