"""
Variant selector and the shared parameter-record base class.

Every variant is a frozen dataclass whose fields carry their defaults, so
``MandelbulbParams()`` is the documented default record. Caller overrides
are merged through ``from_overrides``, which accepts snake_case names as
well as the camelCase / ``u``-prefixed uniform names of the shader host.
"""

import math
import re
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from ..errors import InvalidParameterError
from ..geometry.field import BoundingBox

MAX_ITERATION_LIMIT = 250


class Variant(Enum):
    """Closed set of distance-field variants."""
    MANDELBULB = "mandelbulb"
    FOLDOME = "foldome"
    FIBONACCI_SHELL = "fibonacci_shell"
    MANDELBOX = "mandelbox"
    METATRON = "metatron"
    GYROID = "gyroid"
    TYPHOON = "typhoon"
    QUATERNION_JULIA = "quaternion_julia"
    COSMIC_BLOOM = "cosmic_bloom"

    @property
    def code(self) -> int:
        """Integer mode code used by the shader host."""
        return _MODE_CODES[self]

    @property
    def title(self) -> str:
        return _TITLES[self]

    @classmethod
    def from_code(cls, code: int) -> "Variant":
        for variant, value in _MODE_CODES.items():
            if value == code:
                return variant
        raise InvalidParameterError(f"Unknown variant mode code: {code}")

    @classmethod
    def parse(cls, value: Union["Variant", str, int]) -> "Variant":
        """Resolve a Variant from itself, its name, its title or its mode code."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidParameterError(f"Unknown variant: {value!r}")
        if isinstance(value, (int, np.integer)):
            return cls.from_code(int(value))
        if isinstance(value, str):
            key = re.sub(r"[\s\-]+", "_", value.strip()).lower()
            if key.isdigit():
                return cls.from_code(int(key))
            for variant in cls:
                if key in (variant.value, variant.name.lower()):
                    return variant
            if key in _SHORT_NAMES:
                return _SHORT_NAMES[key]
        raise InvalidParameterError(
            f"Unknown variant: {value!r}. Choose from: {', '.join(v.value for v in cls)}"
        )


_MODE_CODES = {
    Variant.MANDELBULB: 0,
    Variant.FOLDOME: 1,
    Variant.FIBONACCI_SHELL: 2,
    Variant.MANDELBOX: 3,
    Variant.METATRON: 4,
    Variant.GYROID: 5,
    Variant.TYPHOON: 6,
    Variant.QUATERNION_JULIA: 7,
    Variant.COSMIC_BLOOM: 8,
}

_TITLES = {
    Variant.MANDELBULB: "Mandelbulb",
    Variant.FOLDOME: "FoLDome",
    Variant.FIBONACCI_SHELL: "Fibonacci Shell",
    Variant.MANDELBOX: "Mandelbox",
    Variant.METATRON: "Metatron",
    Variant.GYROID: "Gyroid",
    Variant.TYPHOON: "Typhoon",
    Variant.QUATERNION_JULIA: "Quaternion Julia",
    Variant.COSMIC_BLOOM: "Cosmic Bloom",
}

_SHORT_NAMES = {
    "fold": Variant.FOLDOME,
    "fol_dome": Variant.FOLDOME,
    "fibonacci": Variant.FIBONACCI_SHELL,
    "quaternion": Variant.QUATERNION_JULIA,
    "cosmic": Variant.COSMIC_BLOOM,
}


def _snake_case(key: str) -> str:
    # uPowerBase -> PowerBase
    if len(key) > 1 and key[0] == "u" and key[1].isupper():
        key = key[1:]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


@dataclass(frozen=True)
class VariantParams:
    """
    Base class for the per-variant parameter records.

    Subclasses declare their fields with defaults, set ``variant`` and
    implement ``distance`` (vectorized over ``(..., 3)`` points) and
    ``default_bounds``. Field values are coerced to the type of their
    default and checked for finiteness on construction; ``validate``
    adds variant-specific domain checks.
    """
    variant: ClassVar[Variant]
    aliases: ClassVar[Dict[str, str]] = {}

    def __post_init__(self):
        for f in fields(self):
            coerced = _coerce(self.variant, f.name, getattr(self, f.name), f.default)
            object.__setattr__(self, f.name, coerced)
        self.validate()

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def normalize_key(cls, key: str) -> str:
        if key in cls.aliases:
            return cls.aliases[key]
        stripped = key[1:] if len(key) > 1 and key[0] == "u" and key[1].isupper() else key
        if stripped in cls.aliases:
            return cls.aliases[stripped]
        snake = _snake_case(key)
        return cls.aliases.get(snake, snake)

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "VariantParams":
        """
        Merge caller overrides onto the defaults.

        Raises:
            InvalidParameterError: Unknown key or out-of-domain value
        """
        known = set(cls.field_names())
        values = {}
        for key, value in (overrides or {}).items():
            name = cls.normalize_key(str(key))
            if name not in known:
                raise InvalidParameterError(
                    f"Unknown parameter '{key}' for {cls.variant.value}. "
                    f"Known: {', '.join(sorted(known))}"
                )
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {k: list(v) if isinstance(v, tuple) else v for k, v in data.items()}

    def validate(self) -> None:
        """Variant-specific domain checks; the base class has none."""

    def distance(self, points: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def default_bounds(self) -> BoundingBox:
        raise NotImplementedError

    @property
    def default_iso_level(self) -> float:
        """Iso-level used when the caller does not choose one."""
        return 0.0

    def _fail(self, message: str) -> None:
        raise InvalidParameterError(f"{self.variant.value}: {message}")

    def _require_range(self, name: str, lo: float, hi: float) -> None:
        value = getattr(self, name)
        if not lo <= value <= hi:
            self._fail(f"{name}={value} outside [{lo}, {hi}]")

    def _require_positive(self, name: str) -> None:
        value = getattr(self, name)
        if not value > 0:
            self._fail(f"{name}={value} must be > 0")


def _coerce(variant: Variant, name: str, value: Any, default: Any) -> Any:
    where = f"{variant.value}.{name}"

    if isinstance(default, tuple):
        if isinstance(value, str):
            value = [v for v in re.split(r"[,\s]+", value.strip()) if v]
        try:
            items = tuple(float(v) for v in value)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"{where} must be a sequence of numbers, got {value!r}") from e
        if len(items) != len(default):
            raise InvalidParameterError(
                f"{where} needs {len(default)} components, got {len(items)}"
            )
        if not all(math.isfinite(v) for v in items):
            raise InvalidParameterError(f"{where} must be finite, got {items}")
        return items

    if isinstance(value, bool):
        raise InvalidParameterError(f"{where} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"{where} must be numeric, got {value!r}") from e
    if not math.isfinite(number):
        raise InvalidParameterError(f"{where} must be finite, got {value!r}")

    if isinstance(default, int):
        if not number.is_integer():
            raise InvalidParameterError(f"{where} must be an integer, got {value!r}")
        return int(number)
    return number


def check_iterations(params: VariantParams, name: str) -> None:
    params._require_range(name, 1, MAX_ITERATION_LIMIT)
