"""Scalar ``arith`` evaluators used inside generate/pad bodies."""

from __future__ import annotations

import operator
from typing import Any, Callable, Dict

import numpy as np

from .exceptions import ContractError
from .ir import Operation
from .registry import register
from .shaped_value import numpy_dtype
from .state import InterpreterState

_CMPI_PREDICATES: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "slt": operator.lt,
    "sle": operator.le,
    "sgt": operator.gt,
    "sge": operator.ge,
}


def _scalar_type(op: Operation) -> str:
    ty = op.result_type
    if not isinstance(ty, str):
        raise ContractError(f"{op.name} must produce a scalar, got {ty}")
    return ty


def _coerce(op: Operation, value: Any) -> Any:
    return numpy_dtype(_scalar_type(op)).type(value)


@register("arith.constant")
def constant(state: InterpreterState, op: Operation) -> Any:
    return _coerce(op, op.attr("value"))


def _binary(fn: Callable[[Any, Any], Any]):
    def evaluate(state: InterpreterState, op: Operation, lhs: Any, rhs: Any) -> Any:
        return _coerce(op, fn(lhs, rhs))

    evaluate.__name__ = getattr(fn, "__name__", "binary")
    return evaluate


def _floordiv_toward_zero(lhs: Any, rhs: Any) -> int:
    quotient = abs(int(lhs)) // abs(int(rhs))
    return quotient if (int(lhs) >= 0) == (int(rhs) >= 0) else -quotient


def _rem_toward_zero(lhs: Any, rhs: Any) -> int:
    return int(lhs) - _floordiv_toward_zero(lhs, rhs) * int(rhs)


def _integer_division(fn: Callable[[Any, Any], int]):
    binary = _binary(fn)

    def evaluate(state: InterpreterState, op: Operation, lhs: Any, rhs: Any) -> Any:
        if int(rhs) == 0:
            state.add_failure("division by zero")
            return None
        return binary(state, op, lhs, rhs)

    evaluate.__name__ = binary.__name__
    return evaluate


register("arith.addi", "arith.addf")(_binary(operator.add))
register("arith.subi", "arith.subf")(_binary(operator.sub))
register("arith.muli", "arith.mulf")(_binary(operator.mul))
register("arith.divf")(_binary(operator.truediv))
register("arith.divsi")(_integer_division(_floordiv_toward_zero))
register("arith.remsi")(_integer_division(_rem_toward_zero))


@register("arith.index_cast", "arith.sitofp", "arith.extsi", "arith.trunci")
def convert(state: InterpreterState, op: Operation, value: Any) -> Any:
    return _coerce(op, value)


@register("arith.cmpi")
def cmpi(state: InterpreterState, op: Operation, lhs: Any, rhs: Any) -> np.bool_:
    predicate = op.attr("predicate")
    try:
        fn = _CMPI_PREDICATES[predicate]
    except KeyError:
        raise ContractError(f"Unsupported cmpi predicate '{predicate}'") from None
    return np.bool_(fn(int(lhs), int(rhs)))


@register("arith.select")
def select(state: InterpreterState, op: Operation, condition: Any, true_value: Any, false_value: Any) -> Any:
    return true_value if bool(condition) else false_value
