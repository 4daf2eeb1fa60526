"""
Function registry.

Named callables that templates invoke as NAME(args). Every function
declares its accepted argument count range; the registry validates it
before the call.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import ErrorCode, FunctionCallError
from .filters import DEFAULT_DATE_FORMAT, format_date
from .values import is_number, is_sequence, to_float

logger = logging.getLogger(__name__)

FunctionFn = Callable[[List[Any]], Any]


@dataclass(frozen=True)
class Function:
    """Registered function definition."""
    name: str
    fn: FunctionFn
    min_args: int
    max_args: int
    description: str = ""


class FunctionRegistry:
    """
    Registry of template functions.

    Builtins (range, max, min, random, date, cycle, constant) are
    registered on construction and may be overridden.
    """

    def __init__(self, *, builtins: bool = True):
        self._functions: Dict[str, Function] = {}
        if builtins:
            self._register_builtins()

    def register(
        self,
        name: str,
        min_args: int,
        max_args: int,
        fn: FunctionFn,
        description: str = "",
    ) -> None:
        """Registers or replaces a function."""
        if min_args < 0 or max_args < min_args:
            raise ValueError(f"Invalid argument bounds for '{name}': {min_args}..{max_args}")
        self._functions[name] = Function(name, fn, min_args, max_args, description)

    def get(self, name: str) -> Optional[Function]:
        return self._functions.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def names(self) -> List[str]:
        return sorted(self._functions)

    def call(self, name: str, args: Sequence[Any]) -> Any:
        """
        Calls a function after validating the argument count.

        Raises:
            FunctionCallError: FunctionNotFound, TooFewArguments, TooManyArguments
                or an error raised by the function itself
        """
        func = self._functions.get(name)
        if func is None:
            raise FunctionCallError(ErrorCode.FUNCTION_NOT_FOUND, f"'{name}'")
        if len(args) < func.min_args:
            raise FunctionCallError(
                ErrorCode.TOO_FEW_ARGUMENTS,
                f"'{name}' expects at least {func.min_args}, got {len(args)}",
            )
        if len(args) > func.max_args:
            raise FunctionCallError(
                ErrorCode.TOO_MANY_ARGUMENTS,
                f"'{name}' expects at most {func.max_args}, got {len(args)}",
            )
        logger.debug(f"Calling function '{name}' with {len(args)} argument(s)")
        return func.fn(list(args))

    def _register_builtins(self) -> None:
        self.register("range", 2, 2, builtin_range, "Inclusive integer sequence from start to end")
        self.register("max", 1, 1, builtin_max, "Largest value of an array")
        self.register("min", 1, 1, builtin_min, "Smallest value of an array")
        self.register("random", 2, 2, builtin_random, "Random integer between min and max")
        self.register("date", 1, 2, builtin_date, "Formats a timestamp (default: now)")
        self.register("cycle", 2, 2, builtin_cycle, "Array element at position modulo length")
        self.register("constant", 1, 1, builtin_constant, "Value of a named constant")


# ---- builtins ----

def _int_arg(value: Any, name: str) -> int:
    if is_number(value):
        try:
            return int(value)
        except (OverflowError, ValueError):
            raise FunctionCallError(ErrorCode.INVALID_ARGUMENTS, f"{name} is not finite: {value}") from None
    raise FunctionCallError(ErrorCode.INVALID_TYPE, f"{name} must be a number, got {type(value).__name__}")


def builtin_range(args: List[Any]) -> List[int]:
    start = _int_arg(args[0], "start")
    end = _int_arg(args[1], "end")
    return list(range(start, end + 1))


def _extreme(args: List[Any], pick_greater: bool) -> Any:
    values = args[0]
    if is_number(values):
        return values
    if not is_sequence(values):
        raise FunctionCallError(ErrorCode.INVALID_TYPE, f"expected an array, got {type(values).__name__}")
    if not values:
        raise FunctionCallError(ErrorCode.EMPTY_ARRAY)

    best = values[0]
    for item in values[1:]:
        if pick_greater and to_float(item) > to_float(best):
            best = item
        elif not pick_greater and to_float(item) < to_float(best):
            best = item
    return best


def builtin_max(args: List[Any]) -> Any:
    return _extreme(args, pick_greater=True)


def builtin_min(args: List[Any]) -> Any:
    return _extreme(args, pick_greater=False)


def builtin_random(args: List[Any]) -> int:
    low = _int_arg(args[0], "min")
    high = _int_arg(args[1], "max")
    if low > high:
        raise FunctionCallError(ErrorCode.INVALID_ARGUMENTS, f"min {low} is greater than max {high}")
    return random.randint(low, high)


def builtin_date(args: List[Any]) -> str:
    fmt = args[0]
    if not isinstance(fmt, str):
        raise FunctionCallError(ErrorCode.INVALID_TYPE, "format must be a string")
    if len(args) > 1:
        if not is_number(args[1]):
            raise FunctionCallError(ErrorCode.INVALID_TYPE, "timestamp must be a number")
        try:
            moment = datetime.fromtimestamp(args[1], tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise FunctionCallError(ErrorCode.INVALID_ARGUMENTS, f"timestamp {args[1]} out of range: {e}") from None
    else:
        moment = datetime.now(timezone.utc)
    return format_date(moment, fmt or DEFAULT_DATE_FORMAT)


def builtin_cycle(args: List[Any]) -> Any:
    values, position = args
    if not is_sequence(values):
        raise FunctionCallError(ErrorCode.INVALID_TYPE, "values must be an array")
    if isinstance(position, bool) or not isinstance(position, int):
        raise FunctionCallError(ErrorCode.INVALID_TYPE, "position must be an integer")
    if not values:
        raise FunctionCallError(ErrorCode.EMPTY_ARRAY)
    return values[position % len(values)]


_CONSTANTS = {"null": None, "true": True, "false": False}


def builtin_constant(args: List[Any]) -> Any:
    name = args[0]
    if not isinstance(name, str):
        raise FunctionCallError(ErrorCode.INVALID_TYPE, "constant name must be a string")
    if name not in _CONSTANTS:
        raise FunctionCallError(ErrorCode.CONSTANT_NOT_FOUND, f"'{name}'")
    return _CONSTANTS[name]


__all__ = [
    "FunctionFn", "Function", "FunctionRegistry",
    "builtin_range", "builtin_max", "builtin_min", "builtin_random",
    "builtin_date", "builtin_cycle", "builtin_constant",
]
