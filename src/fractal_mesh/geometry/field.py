"""
Scalar Field Sampling Module

Samples a signed-distance evaluator on a uniform lattice covering an
axis-aligned bounding box. The lattice includes both box faces on every
axis, so spacing is ``(max - min) / (n - 1)``.

Samples are stored in a flat buffer in z-major, then y, then x order:

    idx = (iz * ny + iy) * nx + ix
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ExportCancelled, InvalidParameterError, NumericInstabilityError

logger = logging.getLogger(__name__)

# (samples_done, samples_total, stage_label) -> optional stop signal
ProgressCallback = Callable[[int, int, str], Optional[bool]]
Evaluator = Callable[[np.ndarray], np.ndarray]
Resolution = Union[int, Sequence[int]]

PROGRESS_INTERVAL = 100_000


def notify_progress(
    on_progress: Optional[ProgressCallback],
    done: int,
    total: int,
    label: str
) -> None:
    """
    Invoke the advisory progress hook.

    A hook that returns ``False`` (exactly) requests cancellation; any other
    return value is ignored.
    """
    if on_progress is None:
        return
    if on_progress(done, total, label) is False:
        logger.info(f"Cancellation requested during '{label}' at {done}/{total}")
        raise ExportCancelled(label, done, total)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box; ``min_corner < max_corner`` on every axis."""
    min_corner: Tuple[float, float, float]
    max_corner: Tuple[float, float, float]

    def __post_init__(self):
        lo = _as_triple(self.min_corner, "min_corner")
        hi = _as_triple(self.max_corner, "max_corner")
        for axis, a, b in zip("xyz", lo, hi):
            if not a < b:
                raise InvalidParameterError(
                    f"Bounding box min.{axis}={a} must be smaller than max.{axis}={b}"
                )
        object.__setattr__(self, "min_corner", lo)
        object.__setattr__(self, "max_corner", hi)

    @classmethod
    def cube(cls, half_extent: float) -> "BoundingBox":
        h = float(half_extent)
        return cls((-h, -h, -h), (h, h, h))

    @classmethod
    def from_bounds(cls, bounds) -> "BoundingBox":
        """Build from a BoundingBox, a ``(min, max)`` pair or a flat 6-sequence."""
        if isinstance(bounds, cls):
            return bounds
        if isinstance(bounds, dict):
            return cls(bounds["min"], bounds["max"])
        flat = list(bounds)
        if len(flat) == 6:
            return cls(tuple(flat[:3]), tuple(flat[3:]))
        if len(flat) == 2:
            return cls(tuple(flat[0]), tuple(flat[1]))
        raise InvalidParameterError(f"Cannot interpret bounds: {bounds!r}")

    @property
    def min_array(self) -> np.ndarray:
        return np.array(self.min_corner, dtype=np.float64)

    @property
    def max_array(self) -> np.ndarray:
        return np.array(self.max_corner, dtype=np.float64)

    @property
    def extent(self) -> np.ndarray:
        return self.max_array - self.min_array

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.min_array + self.max_array)

    def contains(self, points: np.ndarray, tol: float = 0.0) -> np.ndarray:
        """Boolean mask of points inside the box (inclusive, with tolerance)."""
        points = np.asarray(points, dtype=np.float64)
        return np.all(
            (points >= self.min_array - tol) & (points <= self.max_array + tol),
            axis=-1
        )

    def spacing(self, shape: Tuple[int, int, int]) -> Tuple[float, float, float]:
        """Per-axis lattice spacing for an ``(nx, ny, nz)`` sample grid."""
        return tuple(
            (hi - lo) / (n - 1)
            for lo, hi, n in zip(self.min_corner, self.max_corner, shape)
        )

    def to_dict(self) -> Dict[str, list]:
        return {"min": list(self.min_corner), "max": list(self.max_corner)}


def _as_triple(values, name: str) -> Tuple[float, float, float]:
    try:
        triple = tuple(float(v) for v in values)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"{name} must be three numbers, got {values!r}") from e
    if len(triple) != 3:
        raise InvalidParameterError(f"{name} must have 3 components, got {len(triple)}")
    if not all(math.isfinite(v) for v in triple):
        raise InvalidParameterError(f"{name} must be finite, got {triple}")
    return triple


def normalize_resolution(resolution: Resolution) -> Tuple[int, int, int]:
    """
    Expand a resolution into an ``(nx, ny, nz)`` triple.

    Args:
        resolution: Single int (cubic grid) or three ints

    Raises:
        InvalidParameterError: For non-integers or any axis below 2
    """
    if isinstance(resolution, (int, np.integer)) and not isinstance(resolution, bool):
        dims = (int(resolution),) * 3
    else:
        try:
            dims = tuple(resolution)
        except TypeError as e:
            raise InvalidParameterError(f"Invalid resolution: {resolution!r}") from e
        if len(dims) != 3:
            raise InvalidParameterError(
                f"Resolution must be an int or 3 ints, got {len(dims)} values"
            )
        for n in dims:
            if isinstance(n, bool) or not isinstance(n, (int, np.integer)):
                raise InvalidParameterError(f"Resolution values must be integers, got {n!r}")
        dims = tuple(int(n) for n in dims)

    if min(dims) < 2:
        raise InvalidParameterError(f"Resolution must be >= 2 on every axis, got {dims}")
    return dims


@dataclass
class ScalarField:
    """
    Dense scalar samples over a bounding box.

    ``values`` is the flat buffer; ``grid`` is a ``(nz, ny, nx)`` view of it.
    """
    values: np.ndarray
    shape: Tuple[int, int, int]  # (nx, ny, nz)
    bbox: BoundingBox
    label: Optional[str] = None  # variant that produced the samples

    def __post_init__(self):
        self.shape = normalize_resolution(self.shape)
        self.values = np.ascontiguousarray(self.values, dtype=np.float64).reshape(-1)
        nx, ny, nz = self.shape
        if self.values.size != nx * ny * nz:
            raise InvalidParameterError(
                f"Field buffer holds {self.values.size} samples, "
                f"shape {self.shape} needs {nx * ny * nz}"
            )

    @classmethod
    def from_grid(
        cls,
        grid: np.ndarray,
        bbox: BoundingBox,
        label: Optional[str] = None
    ) -> "ScalarField":
        """Wrap a ``(nz, ny, nx)`` array."""
        grid = np.asarray(grid, dtype=np.float64)
        if grid.ndim != 3:
            raise InvalidParameterError(f"Expected a 3D grid, got shape {grid.shape}")
        nz, ny, nx = grid.shape
        return cls(values=grid.reshape(-1), shape=(nx, ny, nz), bbox=bbox, label=label)

    @property
    def n_samples(self) -> int:
        return self.values.size

    @property
    def spacing(self) -> Tuple[float, float, float]:
        return self.bbox.spacing(self.shape)

    @property
    def grid(self) -> np.ndarray:
        nx, ny, nz = self.shape
        return self.values.reshape(nz, ny, nx)

    def index(self, ix: int, iy: int, iz: int) -> int:
        nx, ny, _ = self.shape
        return (iz * ny + iy) * nx + ix

    def value_at(self, ix: int, iy: int, iz: int) -> float:
        return float(self.values[self.index(ix, iy, iz)])

    def point_at(self, ix: int, iy: int, iz: int) -> np.ndarray:
        return self.bbox.min_array + np.array([ix, iy, iz]) * np.array(self.spacing)

    def check_finite(self) -> None:
        """Raise NumericInstabilityError for the first non-finite sample."""
        bad = find_non_finite(self.grid)
        if bad is not None:
            ix, iy, iz = bad
            value = self.value_at(ix, iy, iz)
            logger.error(
                f"Numeric instability in {self.label or 'field'}: "
                f"{value} at (ix={ix}, iy={iy}, iz={iz})"
            )
            raise NumericInstabilityError(self.label, bad, value)


def find_non_finite(block: np.ndarray, z_offset: int = 0) -> Optional[Tuple[int, int, int]]:
    """
    Locate the first non-finite sample of a ``(nz, ny, nx)`` block.

    Returns:
        ``(ix, iy, iz)`` in sampling order, or None if every sample is finite
    """
    finite = np.isfinite(block)
    if finite.all():
        return None
    iz, iy, ix = np.argwhere(~finite)[0]
    return int(ix), int(iy), int(iz) + z_offset


def slice_points(bbox: BoundingBox, shape: Tuple[int, int, int], iz: int) -> np.ndarray:
    """World-space lattice points of z-slice ``iz`` as an ``(ny, nx, 3)`` array."""
    nx, ny, _ = shape
    dx, dy, dz = bbox.spacing(shape)
    x0, y0, z0 = bbox.min_corner
    xs = x0 + np.arange(nx) * dx
    ys = y0 + np.arange(ny) * dy
    points = np.empty((ny, nx, 3), dtype=np.float64)
    points[..., 0] = xs[None, :]
    points[..., 1] = ys[:, None]
    points[..., 2] = z0 + iz * dz
    return points


def iter_field_slices(
    evaluator: Evaluator,
    bbox: BoundingBox,
    resolution: Resolution,
    on_progress: Optional[ProgressCallback] = None,
    label: Optional[str] = None
) -> Iterator[Tuple[int, np.ndarray]]:
    """
    Yield ``(iz, slice)`` pairs, each slice an ``(ny, nx)`` array of samples.

    The evaluator is called once per slice with an ``(ny, nx, 3)`` point
    array. The progress hook fires whenever a multiple of
    PROGRESS_INTERVAL samples is crossed, then once on completion.
    """
    shape = normalize_resolution(resolution)
    nx, ny, nz = shape
    total = nx * ny * nz
    per_slice = nx * ny
    done = 0

    logger.debug(
        f"Sampling {label or 'field'} on {nx}x{ny}x{nz} grid, "
        f"spacing={tuple(round(s, 6) for s in bbox.spacing(shape))}"
    )

    for iz in range(nz):
        samples = np.asarray(evaluator(slice_points(bbox, shape, iz)), dtype=np.float64)
        samples = samples.reshape(ny, nx)

        previous = done
        done += per_slice
        if done // PROGRESS_INTERVAL > previous // PROGRESS_INTERVAL:
            notify_progress(on_progress, done, total, "Sampling scalar field")

        yield iz, samples

    notify_progress(on_progress, total, total, "Sampling complete")


def sample_field(
    evaluator: Evaluator,
    bbox: BoundingBox,
    resolution: Resolution,
    on_progress: Optional[ProgressCallback] = None,
    label: Optional[str] = None
) -> ScalarField:
    """
    Sample ``evaluator`` over every lattice point of ``bbox``.

    Args:
        evaluator: Vectorized distance function over ``(..., 3)`` points
        bbox: Region to cover
        resolution: Samples per axis (int or (nx, ny, nz)), each >= 2
        on_progress: Optional advisory hook; return False to cancel
        label: Variant name recorded on the field for diagnostics

    Returns:
        ScalarField; non-finite samples are kept as-is
    """
    shape = normalize_resolution(resolution)
    nx, ny, nz = shape
    values = np.empty(nx * ny * nz, dtype=np.float64)
    per_slice = nx * ny

    for iz, samples in iter_field_slices(evaluator, bbox, shape, on_progress, label):
        values[iz * per_slice:(iz + 1) * per_slice] = samples.reshape(-1)

    logger.info(f"Sampled {values.size} points ({nx}x{ny}x{nz}) for {label or 'field'}")
    return ScalarField(values=values, shape=shape, bbox=bbox, label=label)
