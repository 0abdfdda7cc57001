from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import BackendError, ContractError

# Marks a size/offset/stride whose value is supplied as a runtime operand.
DYNAMIC = -(2**63)


def is_dynamic(value: int) -> bool:
    return int(value) < 0


def count_dynamic(values: Sequence[int]) -> int:
    return sum(1 for value in values if is_dynamic(value))


@dataclass(frozen=True)
class TensorType:
    shape: Tuple[int, ...]
    element_type: str

    @property
    def rank(self) -> int:
        return len(self.shape)

    def __str__(self) -> str:
        dims = "".join(("?" if is_dynamic(size) else str(size)) + "x" for size in self.shape)
        return f"tensor<{dims}{self.element_type}>"


Type = Any  # TensorType | str (scalar element type)

_MISSING = object()


@dataclass
class Operation:
    name: str
    operands: List[str] = field(default_factory=list)
    results: List[str] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)
    regions: List["Region"] = field(default_factory=list)
    operand_types: List[Type] = field(default_factory=list)
    result_types: List[Type] = field(default_factory=list)
    line: Optional[int] = None
    column: Optional[int] = None
    source: Optional[str] = None

    @property
    def num_results(self) -> int:
        return len(self.result_types)

    @property
    def result_type(self) -> Type:
        if not self.result_types:
            raise ContractError(f"{self.name} has no result type")
        return self.result_types[0]

    def attr(self, key: str, default: Any = _MISSING) -> Any:
        if key in self.attributes:
            return self.attributes[key]
        if default is _MISSING:
            raise ContractError(f"{self.name} is missing attribute '{key}'")
        return default

    def int_list(self, key: str) -> List[int]:
        return [int(v) for v in self.attr(key)]

    def region(self, position: int = 0) -> "Region":
        if position >= len(self.regions):
            raise ContractError(f"{self.name} expects a region at position {position}")
        return self.regions[position]


@dataclass
class Region:
    arguments: List[str] = field(default_factory=list)
    argument_types: List[Type] = field(default_factory=list)
    operations: List[Operation] = field(default_factory=list)


@dataclass
class Function:
    name: str
    arguments: List[str] = field(default_factory=list)
    argument_types: List[Type] = field(default_factory=list)
    operations: List[Operation] = field(default_factory=list)
    result_types: List[Type] = field(default_factory=list)

    @property
    def body(self) -> Region:
        return Region(
            arguments=list(self.arguments),
            argument_types=list(self.argument_types),
            operations=self.operations,
        )


@dataclass
class ModuleIR:
    functions: Dict[str, Function] = field(default_factory=dict)

    def function(self, name: str) -> Function:
        try:
            return self.functions[name]
        except KeyError:
            known = ", ".join(sorted(self.functions)) or "none"
            raise BackendError(f"Unknown function '@{name}' (defined: {known})") from None

    def operation_names(self) -> List[str]:
        names: Dict[str, None] = {}
        for fn in self.functions.values():
            _collect_operation_names(fn.operations, names)
        return list(names.keys())


def _collect_operation_names(operations: Sequence[Operation], seen: Dict[str, None]) -> None:
    for op in operations:
        if op.name not in seen:
            seen[op.name] = None
        for region in op.regions:
            _collect_operation_names(region.operations, seen)


def json_ready(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (np.integer, np.floating, np.bool_)):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, dict):
        return {str(k): json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_ready(v) for v in value]
    return str(value)
