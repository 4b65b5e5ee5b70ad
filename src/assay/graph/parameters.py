"""Typed filter/codec parameter values and their single dispatch point."""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from math import gcd
from typing import TYPE_CHECKING, Any, Mapping

from assay.errors import SetupError

if TYPE_CHECKING:
    from assay.backend.base import FilterNode


@dataclass(frozen=True, slots=True)
class Rational:
    """Unreduced numerator/denominator pair, as carried by media time bases."""

    num: int
    den: int

    def invert(self) -> Rational:
        return Rational(num=self.den, den=self.num)

    def reduce(self) -> Rational:
        divisor = gcd(self.num, self.den) or 1
        return Rational(num=self.num // divisor, den=self.den // divisor)

    def to_float(self) -> float:
        if self.den == 0:
            return 0.0
        return self.num / self.den

    def to_fraction(self) -> Fraction:
        return Fraction(self.num, self.den)

    @classmethod
    def from_fraction(cls, value: Fraction | None, default: Rational | None = None) -> Rational | None:
        if value is None:
            return default
        return cls(num=value.numerator, den=value.denominator)

    def to_dict(self) -> dict[str, int]:
        return {"num": self.num, "den": self.den}


@dataclass(frozen=True, slots=True)
class Bool:
    value: bool


@dataclass(frozen=True, slots=True)
class Int64:
    value: int


@dataclass(frozen=True, slots=True)
class Float:
    value: float


@dataclass(frozen=True, slots=True)
class RationalValue:
    value: Rational


@dataclass(frozen=True, slots=True)
class String:
    value: str


@dataclass(frozen=True, slots=True)
class ChannelLayout:
    """Channel layout expressed as a 64-bit speaker mask."""

    value: int


ParamValue = Bool | Int64 | Float | RationalValue | String | ChannelLayout


def apply_parameter(node: FilterNode, key: str, value: ParamValue) -> None:
    """Forward one parameter to the matching typed setter of a backend node."""

    if isinstance(value, Bool):
        node.set_int(key, int(value.value))
        return
    if isinstance(value, Int64):
        node.set_int(key, value.value)
        return
    if isinstance(value, Float):
        node.set_double(key, value.value)
        return
    if isinstance(value, RationalValue):
        node.set_rational(key, value.value.num, value.value.den)
        return
    if isinstance(value, String):
        node.set_string(key, value.value)
        return
    if isinstance(value, ChannelLayout):
        node.set_channel_layout(key, value.value)
        return
    raise TypeError(f"Unsupported parameter value type: {type(value).__name__}")


def apply_parameters(node: FilterNode, parameters: Mapping[str, ParamValue]) -> None:
    """Apply every parameter of a mapping, in mapping order."""

    for key, value in parameters.items():
        apply_parameter(node, key, value)


def param_from_json(raw: Any) -> ParamValue:
    """Decode one untagged JSON parameter value.

    Booleans are tested before integers since `bool` is an `int` subclass, and a
    `{"num", "den"}` object becomes a rational.
    """

    if isinstance(raw, bool):
        return Bool(raw)
    if isinstance(raw, int):
        return Int64(raw)
    if isinstance(raw, float):
        return Float(raw)
    if isinstance(raw, str):
        return String(raw)
    if isinstance(raw, dict) and {"num", "den"} <= raw.keys():
        return RationalValue(Rational(num=int(raw["num"]), den=int(raw["den"])))
    raise SetupError(f"Unsupported parameter value: {raw!r}")


def params_from_json(raw: Any) -> dict[str, ParamValue]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SetupError(f"Parameters must be an object, got {type(raw).__name__}")
    return {str(key): param_from_json(value) for key, value in raw.items()}


def param_to_json(value: ParamValue) -> Any:
    if isinstance(value, RationalValue):
        return value.value.to_dict()
    return value.value
