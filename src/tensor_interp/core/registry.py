"""Operation registration and operand unpacking.

An evaluator is registered under one or more operation names together with
an *unpacker*: a function turning the flat list of operand values the engine
resolved into the evaluator's positional arguments. Dynamic size/offset/stride
operands are grouped by counting the dynamic entries of the static attribute
they fill in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence

from .exceptions import BackendError, ContractError
from .ir import Operation, count_dynamic

Unpacker = Callable[[Operation, Sequence[Any]], List[Any]]


@dataclass(frozen=True)
class OpEntry:
    name: str
    fn: Callable[..., Any]
    unpack: Unpacker
    takes_regions: bool = False


_REGISTRY: Dict[str, OpEntry] = {}


def positional(_op: Operation, values: Sequence[Any]) -> List[Any]:
    return list(values)


def variadic(_op: Operation, values: Sequence[Any]) -> List[Any]:
    return [list(values)]


def dynamic_list(_op: Operation, values: Sequence[Any]) -> List[Any]:
    return [_ints(values)]


def leading_then_indices(count: int) -> Unpacker:
    def unpack(_op: Operation, values: Sequence[Any]) -> List[Any]:
        return [*values[:count], _ints(values[count:])]

    return unpack


def dynamic_segments(count: int, *attributes: str) -> Unpacker:
    def unpack(op: Operation, values: Sequence[Any]) -> List[Any]:
        args: List[Any] = list(values[:count])
        pos = count
        for key in attributes:
            width = count_dynamic(op.int_list(key))
            args.append(_ints(values[pos : pos + width]))
            pos += width
        if pos != len(values):
            raise ContractError(
                f"{op.name} got {len(values)} operands, expected {pos} from its static attributes"
            )
        return args

    return unpack


def _ints(values: Sequence[Any]) -> List[int]:
    return [int(v) for v in values]


def register(*names: str, unpack: Unpacker = positional, regions: bool = False):
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        for name in names:
            _REGISTRY[name] = OpEntry(name=name, fn=fn, unpack=unpack, takes_regions=regions)
        return fn

    return decorator


def lookup(name: str) -> OpEntry:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise BackendError(f"No evaluator registered for operation '{name}'") from None


def registered_operations() -> List[str]:
    return sorted(_REGISTRY)
