"""Constraint-based arithmetic question generation.

Addition and subtraction draw continuous values bounded by a digit count and
rounded to a random number of decimal places. Multiplication and division use
whole numbers; division redraws until the dividend is an exact multiple of the
divisor so every answer is an integer. Randomness always comes from an explicit
``RandomSource`` so a seeded stream reproduces the same questions.
"""

from __future__ import annotations

import math
import random
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol, TypeVar

T = TypeVar("T")

Number = int | float

NO_OPERATIONS_TEXT = "No operations selected."
TIME_UP_TEXT = "Time is up!"

WHOLE_NUMBER_MAX = 99
MAX_DIVISION_DRAWS = 1000
# Largest bound whose whole numbers are all exact as floats.
MAX_FLOAT_BOUND = 2**53


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...
    def uniform(self, a: float, b: float) -> float: ...
    def choice(self, seq: Sequence[T]) -> T: ...


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)


class Operator(str, Enum):
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]


_SYMBOLS = {
    Operator.ADD: "+",
    Operator.SUB: "-",
    Operator.MUL: "×",
    Operator.DIV: "÷",
}

# Fixed draw order keeps seeded streams stable regardless of set iteration.
OPERATOR_ORDER: tuple[Operator, ...] = (Operator.ADD, Operator.SUB, Operator.MUL, Operator.DIV)


@dataclass(frozen=True, slots=True)
class GenerationConfig:
    addition_max_digits: int = 2
    addition_max_decimals: int = 2
    subtraction_max_digits: int = 2
    subtraction_max_decimals: int = 2
    enabled_operators: frozenset[Operator] = field(default_factory=lambda: frozenset(OPERATOR_ORDER))

    def with_operator(self, op: Operator, enabled: bool) -> "GenerationConfig":
        ops = set(self.enabled_operators)
        if enabled:
            ops.add(op)
        else:
            ops.discard(op)
        return replace(self, enabled_operators=frozenset(ops))

    def ordered_operators(self) -> list[Operator]:
        return [op for op in OPERATOR_ORDER if op in self.enabled_operators]

    def to_dict(self) -> dict[str, Any]:
        return {
            "addition_max_digits": int(self.addition_max_digits),
            "addition_max_decimals": int(self.addition_max_decimals),
            "subtraction_max_digits": int(self.subtraction_max_digits),
            "subtraction_max_decimals": int(self.subtraction_max_decimals),
            "enabled_operators": [op.value for op in self.ordered_operators()],
        }

    @classmethod
    def from_dict(cls, data: object) -> "GenerationConfig":
        """Tolerant loader: unknown or malformed fields fall back to defaults.

        Values are not clamped; range limits belong to the input widget.
        """

        default = cls()
        if not isinstance(data, dict):
            return default
        raw_ops = data.get("enabled_operators")
        if isinstance(raw_ops, list):
            ops = frozenset(op for op in OPERATOR_ORDER if op.value in {str(v) for v in raw_ops})
        else:
            ops = default.enabled_operators
        return cls(
            addition_max_digits=_as_int(data.get("addition_max_digits"), default.addition_max_digits),
            addition_max_decimals=_as_int(data.get("addition_max_decimals"), default.addition_max_decimals),
            subtraction_max_digits=_as_int(data.get("subtraction_max_digits"), default.subtraction_max_digits),
            subtraction_max_decimals=_as_int(
                data.get("subtraction_max_decimals"), default.subtraction_max_decimals
            ),
            enabled_operators=ops,
        )


@dataclass(frozen=True, slots=True)
class Question:
    operand_a: Number
    operand_b: Number
    operator: Operator | None
    display_text: str
    expected_answer: Number | None

    @property
    def is_answerable(self) -> bool:
        return self.expected_answer is not None


NO_OPERATIONS_QUESTION = Question(
    operand_a=0,
    operand_b=0,
    operator=None,
    display_text=NO_OPERATIONS_TEXT,
    expected_answer=None,
)

TIME_UP_QUESTION = Question(
    operand_a=0,
    operand_b=0,
    operator=None,
    display_text=TIME_UP_TEXT,
    expected_answer=None,
)


def generate(config: GenerationConfig, rng: RandomSource) -> Question:
    """Produce one question for ``config`` using ``rng``."""

    candidates = config.ordered_operators()
    if not candidates:
        return NO_OPERATIONS_QUESTION

    op = rng.choice(candidates)
    a: Number
    b: Number
    answer: Number
    if op is Operator.ADD:
        bound = 10 ** config.addition_max_digits - 1
        a = random_decimal(rng, bound, config.addition_max_decimals)
        b = random_decimal(rng, bound, config.addition_max_decimals)
        answer = a + b
    elif op is Operator.SUB:
        bound = 10 ** config.subtraction_max_digits - 1
        a = random_decimal(rng, bound, config.subtraction_max_decimals)
        b = random_decimal(rng, bound, config.subtraction_max_decimals)
        if b > a:
            a, b = b, a
        answer = a - b
    elif op is Operator.MUL:
        a = rng.randint(0, WHOLE_NUMBER_MAX)
        b = rng.randint(0, WHOLE_NUMBER_MAX)
        answer = a * b
    else:
        a, b = _draw_division_pair(rng)
        answer = a // b

    return Question(
        operand_a=a,
        operand_b=b,
        operator=op,
        display_text=f"{format_number(a)} {op.symbol} {format_number(b)} = ?",
        expected_answer=answer,
    )


def random_decimal(rng: RandomSource, bound: int, max_decimals: int) -> Number:
    """Uniform value in [0, bound] rounded to 0..max_decimals places."""

    places = rng.randint(0, max(0, int(max_decimals)))
    if bound > MAX_FLOAT_BOUND:
        # Floats cannot carry decimals (or even the bound) at this size; stay whole.
        return rng.randint(0, bound)
    raw = rng.uniform(0.0, float(bound))
    return round_half_up(raw, places)


def round_half_up(x: float, places: int = 0) -> Number:
    """Round with halves going up, for consistent educational-style rounding."""

    if places <= 0:
        return int(math.floor(x + 0.5))
    scale = 10**places
    return math.floor(x * scale + 0.5) / scale


def _draw_division_pair(rng: RandomSource) -> tuple[int, int]:
    dividend = 1
    # Re-roll until the quotient is a whole number.
    for _ in range(MAX_DIVISION_DRAWS):
        dividend = rng.randint(1, WHOLE_NUMBER_MAX)
        divisor = rng.randint(1, WHOLE_NUMBER_MAX)
        if dividend % divisor == 0:
            return dividend, divisor
    # Fallback: any dividend divides evenly by 1.
    return dividend, 1


def format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def decimal_places(value: Number) -> int:
    text = format_number(value)
    if "." not in text:
        return 0
    return len(text.split(".", 1)[1])


def _as_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
