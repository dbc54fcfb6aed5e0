"""
Error taxonomy for the export pipeline.

Every failure is deterministic for a given input, so nothing is retried:
the caller adjusts parameters and invokes the pipeline again. No stage
returns partial output once one of these has been raised.
"""

from typing import Optional, Tuple


class FractalMeshError(Exception):
    """Base class for all pipeline errors."""


class InvalidParameterError(FractalMeshError, ValueError):
    """Rejected input: bad resolution, unknown variant/key, out-of-domain value."""


class NumericInstabilityError(FractalMeshError, ArithmeticError):
    """
    A sampled distance is NaN or Infinity.

    Attributes:
        variant: Label of the evaluator that produced the sample (may be None)
        grid_index: (ix, iy, iz) of the first offending sample in sampling order
        value: The offending value
    """

    def __init__(
        self,
        variant: Optional[str],
        grid_index: Tuple[int, int, int],
        value: float
    ):
        self.variant = variant
        self.grid_index = tuple(int(i) for i in grid_index)
        self.value = float(value)
        ix, iy, iz = self.grid_index
        super().__init__(
            f"Non-finite sample {self.value!r} from variant "
            f"{variant or '<unknown>'} at grid index (ix={ix}, iy={iy}, iz={iz})"
        )


class SerializationError(FractalMeshError):
    """Inconsistent buffers detected while assembling the binary container."""


class ExportCancelled(FractalMeshError):
    """The progress hook asked the pipeline to stop."""

    def __init__(self, stage: str, done: int, total: int):
        self.stage = stage
        self.done = done
        self.total = total
        super().__init__(f"Export cancelled during '{stage}' ({done}/{total})")
