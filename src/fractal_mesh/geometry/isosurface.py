"""
Isosurface Extraction Module

Polygonizes a sampled distance field with classic Marching Cubes.

The extractor walks the grid one slab (two adjacent z-slices) at a time,
so the same code serves the in-memory field and the streaming path where
only two slices are ever alive. Within a slab all cells are classified and
interpolated at once with numpy.

Conventions:
- corner ``i`` counts as inside when its value is strictly below the
  iso-level; a value equal to the iso-level is outside
- vertices are emitted per cell, without sharing between cells
- triangles wind counter-clockwise seen from the outside (higher values)
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np

from ..errors import InvalidParameterError, NumericInstabilityError, SerializationError
from .field import (
    PROGRESS_INTERVAL,
    BoundingBox,
    ProgressCallback,
    Resolution,
    ScalarField,
    find_non_finite,
    normalize_resolution,
    notify_progress,
)
from .mc_tables import CORNER_OFFSETS, EDGE_CORNERS, EDGE_TABLE, TRI_TABLE

logger = logging.getLogger(__name__)

STAGE_LABEL = "Running Marching Cubes"

_EDGE_BITS = np.arange(12)


@dataclass
class TriangleSoup:
    """A triangle mesh as produced by Marching Cubes."""
    positions: np.ndarray  # (V, 3) world-space vertex positions
    indices: np.ndarray    # (T, 3) vertex indices per triangle
    normals: Optional[np.ndarray] = None  # (V, 3) unit normals

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        self.indices = np.asarray(self.indices, dtype=np.int64).reshape(-1, 3)
        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)

    @classmethod
    def empty(cls) -> "TriangleSoup":
        return cls(np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64))

    @property
    def n_vertices(self) -> int:
        return len(self.positions)

    @property
    def n_triangles(self) -> int:
        return len(self.indices)

    @property
    def is_empty(self) -> bool:
        return self.n_triangles == 0

    @property
    def flat_positions(self) -> np.ndarray:
        return self.positions.reshape(-1)

    @property
    def flat_indices(self) -> np.ndarray:
        return self.indices.reshape(-1)

    @property
    def flat_normals(self) -> Optional[np.ndarray]:
        return None if self.normals is None else self.normals.reshape(-1)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned (min, max) of the vertex positions."""
        if self.n_vertices == 0:
            raise SerializationError("Bounds of an empty mesh are undefined")
        return self.positions.min(axis=0), self.positions.max(axis=0)

    def validate(self) -> None:
        """
        Check buffer consistency.

        Raises:
            SerializationError: On any mismatch between the buffers
        """
        if self.n_vertices == 0 or self.n_triangles == 0:
            raise SerializationError(
                f"Mesh is empty ({self.n_vertices} vertices, {self.n_triangles} triangles)"
            )
        if not np.all(np.isfinite(self.positions)):
            raise SerializationError("Vertex positions contain non-finite values")
        low, high = int(self.indices.min()), int(self.indices.max())
        if low < 0 or high >= self.n_vertices:
            raise SerializationError(
                f"Triangle indices span [{low}, {high}] but mesh has {self.n_vertices} vertices"
            )
        if self.normals is not None:
            if self.normals.shape != self.positions.shape:
                raise SerializationError(
                    f"Normal count {len(self.normals)} does not match vertex count {self.n_vertices}"
                )
            if not np.all(np.isfinite(self.normals)):
                raise SerializationError("Vertex normals contain non-finite values")


class MarchingCubes:
    """
    Incremental Marching Cubes over consecutive slabs of a grid.

    Feed slabs in increasing z order with ``add_slab`` and collect the
    mesh with ``result``.
    """

    def __init__(
        self,
        bbox: BoundingBox,
        shape: Resolution,
        iso_level: float = 0.0,
        label: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        self.bbox = bbox
        self.shape = normalize_resolution(shape)
        self.iso_level = float(iso_level)
        self.label = label
        self.on_progress = on_progress

        self.origin = bbox.min_array
        self.spacing = np.array(bbox.spacing(self.shape))

        nx, ny, nz = self.shape
        self.cells_per_slab = (nx - 1) * (ny - 1)
        self.total_cells = self.cells_per_slab * (nz - 1)
        self.cells_done = 0

        self._positions: List[np.ndarray] = []
        self._triangles: List[np.ndarray] = []
        self._n_vertices = 0

    def check_slice(self, iz: int, values: np.ndarray) -> None:
        """Raise NumericInstabilityError if a z-slice holds NaN or Infinity."""
        bad = find_non_finite(values[None, :, :], z_offset=iz)
        if bad is not None:
            ix, iy, _ = bad
            value = float(values[iy, ix])
            logger.error(
                f"Numeric instability in {self.label or 'field'}: "
                f"{value} at (ix={ix}, iy={iy}, iz={iz})"
            )
            raise NumericInstabilityError(self.label, bad, value)

    def add_slab(self, iz: int, lower: np.ndarray, upper: np.ndarray) -> None:
        """Polygonize the cells between z-slices ``iz`` and ``iz + 1``."""
        positions, triangles = self._polygonize(iz, lower, upper)
        if len(triangles):
            self._positions.append(positions)
            self._triangles.append(triangles)
            self._n_vertices += len(positions)

        previous = self.cells_done
        self.cells_done += self.cells_per_slab
        if self.cells_done // PROGRESS_INTERVAL > previous // PROGRESS_INTERVAL:
            notify_progress(self.on_progress, self.cells_done, self.total_cells, STAGE_LABEL)

    def result(self) -> TriangleSoup:
        notify_progress(self.on_progress, self.total_cells, self.total_cells, STAGE_LABEL)
        if not self._triangles:
            logger.warning(
                f"No surface found at iso-level {self.iso_level} for {self.label or 'field'}"
            )
            return TriangleSoup.empty()

        soup = TriangleSoup(
            positions=np.concatenate(self._positions),
            indices=np.concatenate(self._triangles)
        )
        logger.info(f"Marching Cubes: {soup.n_vertices} vertices, {soup.n_triangles} triangles")
        return soup

    def _polygonize(
        self,
        iz: int,
        lower: np.ndarray,
        upper: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        iso = self.iso_level
        slabs = (lower, upper)

        # (8, ny-1, nx-1) corner values, in CORNER_OFFSETS order
        corners = np.stack([
            slabs[oz][oy:oy + lower.shape[0] - 1, ox:ox + lower.shape[1] - 1]
            for ox, oy, oz in CORNER_OFFSETS
        ])

        config = np.zeros(corners.shape[1:], dtype=np.int64)
        for bit in range(8):
            config |= (corners[bit] < iso).astype(np.int64) << bit

        # Active cells in (y, x) row-major order
        cy, cx = np.nonzero(EDGE_TABLE[config])
        if cy.size == 0:
            return np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64)

        cell_config = config[cy, cx]
        cell_values = corners[:, cy, cx].T  # (m, 8)

        edge_active = ((EDGE_TABLE[cell_config][:, None] >> _EDGE_BITS) & 1).astype(bool)
        vertex_ids = (np.cumsum(edge_active.ravel()) - 1).reshape(edge_active.shape)
        vertex_ids += self._n_vertices

        # One vertex per active (cell, edge)
        cell_idx, edge_idx = np.nonzero(edge_active)
        a, b = EDGE_CORNERS[edge_idx, 0], EDGE_CORNERS[edge_idx, 1]
        va = cell_values[cell_idx, a]
        vb = cell_values[cell_idx, b]
        t = (iso - va) / (vb - va)

        base = np.stack([cx[cell_idx], cy[cell_idx], np.full(cell_idx.size, iz)], axis=-1)
        pa = base + CORNER_OFFSETS[a]
        pb = base + CORNER_OFFSETS[b]
        grid_pos = pa + t[:, None] * (pb - pa)
        positions = self.origin + grid_pos * self.spacing

        # Up to five triangles per cell, as edge triples
        tri_edges = TRI_TABLE[cell_config][:, :15].reshape(-1, 5, 3)
        tri_cell, tri_slot = np.nonzero(tri_edges[:, :, 0] >= 0)
        edges = tri_edges[tri_cell, tri_slot]
        triangles = vertex_ids[tri_cell[:, None], edges]

        # Reverse table winding so faces point toward higher values
        return positions, triangles[:, ::-1].copy()


def extract_isosurface(
    field: ScalarField,
    iso_level: float = 0.0,
    on_progress: Optional[ProgressCallback] = None
) -> TriangleSoup:
    """
    Extract the ``iso_level`` surface of a sampled field.

    Args:
        field: Sampled scalar field
        iso_level: Surface threshold
        on_progress: Optional advisory hook; return False to cancel

    Returns:
        TriangleSoup without normals (empty if the surface misses the grid)

    Raises:
        NumericInstabilityError: If any sample is NaN or Infinity
    """
    field.check_finite()

    nx, ny, nz = field.shape
    logger.debug(f"Extracting iso={iso_level} from {nx}x{ny}x{nz} field")

    cubes = MarchingCubes(field.bbox, field.shape, iso_level, field.label, on_progress)
    grid = field.grid
    for iz in range(nz - 1):
        cubes.add_slab(iz, grid[iz], grid[iz + 1])
    return cubes.result()


def extract_isosurface_streaming(
    slices: Iterable[Tuple[int, np.ndarray]],
    bbox: BoundingBox,
    shape: Resolution,
    iso_level: float = 0.0,
    on_progress: Optional[ProgressCallback] = None,
    label: Optional[str] = None
) -> TriangleSoup:
    """
    Extract an isosurface from z-slices as they are sampled.

    ``slices`` yields ``(iz, values)`` with ``values`` of shape ``(ny, nx)``
    in increasing ``iz`` (as produced by ``iter_field_slices``). Only the
    current and previous slices are held.
    """
    shape = normalize_resolution(shape)
    nx, ny, nz = shape
    cubes = MarchingCubes(bbox, shape, iso_level, label, on_progress)

    previous = None
    expected = 0
    for iz, values in slices:
        values = np.asarray(values, dtype=np.float64).reshape(ny, nx)
        if iz != expected:
            raise InvalidParameterError(f"Slices out of order: expected iz={expected}, got {iz}")
        cubes.check_slice(iz, values)
        if previous is not None:
            cubes.add_slab(iz - 1, previous, values)
        previous = values
        expected += 1

    if expected != nz:
        raise InvalidParameterError(f"Expected {nz} slices, received {expected}")
    return cubes.result()
