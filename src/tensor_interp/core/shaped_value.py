from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import ContractError

Index = Tuple[int, ...]

_ELEMENT_DTYPES: Dict[str, Any] = {
    "i1": np.bool_,
    "i8": np.int8,
    "i16": np.int16,
    "i32": np.int32,
    "i64": np.int64,
    "index": np.int64,
    "f16": np.float16,
    "bf16": np.float32,  # numpy has no bfloat16
    "f32": np.float32,
    "f64": np.float64,
}

_DTYPE_ELEMENTS: Dict[Any, str] = {
    np.dtype(np.bool_): "i1",
    np.dtype(np.int8): "i8",
    np.dtype(np.int16): "i16",
    np.dtype(np.int32): "i32",
    np.dtype(np.int64): "i64",
    np.dtype(np.float16): "f16",
    np.dtype(np.float32): "f32",
    np.dtype(np.float64): "f64",
}


def numpy_dtype(element_type: str) -> np.dtype:
    try:
        return np.dtype(_ELEMENT_DTYPES[element_type])
    except KeyError:
        raise ContractError(f"Unsupported element type '{element_type}'") from None


def element_type_for(dtype: Any) -> str:
    try:
        return _DTYPE_ELEMENTS[np.dtype(dtype)]
    except KeyError:
        raise ContractError(f"No element type corresponds to dtype {dtype}") from None


def default_strides(sizes: Sequence[int]) -> List[int]:
    strides = [1] * len(sizes)
    running = 1
    for dim in range(len(sizes) - 1, -1, -1):
        strides[dim] = running
        running *= max(int(sizes[dim]), 1)
    return strides


def num_elements(sizes: Sequence[int]) -> int:
    total = 1
    for size in sizes:
        total *= int(size)
    return total


@dataclass
class View:
    """Maps logical indices onto positions of a flat backing buffer."""

    sizes: List[int]
    strides: List[int]
    offset: int = 0

    def __post_init__(self) -> None:
        self.sizes = [int(s) for s in self.sizes]
        self.strides = [int(s) for s in self.strides]
        self.offset = int(self.offset)
        if len(self.sizes) != len(self.strides):
            raise ContractError(
                f"View rank mismatch: {len(self.sizes)} sizes vs {len(self.strides)} strides"
            )

    @classmethod
    def contiguous(cls, sizes: Sequence[int], offset: int = 0) -> "View":
        return cls(list(sizes), default_strides(sizes), offset)

    @property
    def rank(self) -> int:
        return len(self.sizes)

    @property
    def num_elements(self) -> int:
        return num_elements(self.sizes)

    def in_bounds(self, index: Sequence[int]) -> bool:
        if len(index) != len(self.sizes):
            return False
        return all(0 <= int(i) < size for i, size in zip(index, self.sizes))

    def indices(self) -> Iterator[Index]:
        """Row-major walk over every index; each call starts a fresh walk."""
        return itertools.product(*(range(size) for size in self.sizes))

    def physical_index(self, index: Sequence[int]) -> int:
        position = self.offset
        for i, stride in zip(index, self.strides):
            position += int(i) * stride
        return position

    def is_contiguous(self) -> bool:
        expected = default_strides(self.sizes)
        return all(
            size == 1 or stride == want
            for size, stride, want in zip(self.sizes, self.strides, expected)
        )

    def copy(self) -> "View":
        return View(list(self.sizes), list(self.strides), self.offset)


class ShapedValue:
    """A tensor: element type, a view, and a (possibly shared) flat buffer.

    Several values may hold the same ``storage`` array. Only ``clone`` breaks
    the aliasing; everything else reads and writes through the shared buffer.
    """

    def __init__(self, element_type: str, view: View, storage: np.ndarray):
        self.element_type = element_type
        self.view = view
        self.storage = storage

    # ----------------------------------------------------------- construction
    @classmethod
    def make_tensor(cls, element_type: str, sizes: Sequence[int]) -> "ShapedValue":
        sizes = [int(s) for s in sizes]
        if any(s < 0 for s in sizes):
            raise ContractError(f"Cannot allocate a tensor with unresolved sizes {sizes}")
        storage = np.zeros(num_elements(sizes), dtype=numpy_dtype(element_type))
        return cls(element_type, View.contiguous(sizes), storage)

    @classmethod
    def from_array(cls, array: Any, element_type: Optional[str] = None) -> "ShapedValue":
        arr = np.asarray(array)
        if element_type is None:
            element_type = element_type_for(arr.dtype)
        flat = np.array(arr, dtype=numpy_dtype(element_type), copy=True).reshape(-1)
        return cls(element_type, View.contiguous(arr.shape), flat)

    def to_array(self) -> np.ndarray:
        out = np.empty(tuple(self.view.sizes), dtype=self.storage.dtype)
        for index in self.view.indices():
            out[index] = self.extract_element(index)
        return out

    def clone(self) -> "ShapedValue":
        return ShapedValue(self.element_type, self.view.copy(), self.storage.copy())

    def typed_alike(self, sizes: Sequence[int]) -> "ShapedValue":
        return ShapedValue.make_tensor(self.element_type, sizes)

    # ---------------------------------------------------------------- access
    @property
    def sizes(self) -> List[int]:
        return self.view.sizes

    @property
    def rank(self) -> int:
        return self.view.rank

    def shares_storage(self, other: "ShapedValue") -> bool:
        return self.storage is other.storage

    def extract_element(self, index: Sequence[int]) -> Any:
        return self.storage[self.view.physical_index(index)]

    def insert_element(self, index: Sequence[int], value: Any) -> None:
        self.storage[self.view.physical_index(index)] = value

    def fill(self, fn: Callable[[Index], Any]) -> None:
        for index in self.view.indices():
            self.insert_element(index, fn(index))

    def __repr__(self) -> str:
        dims = "x".join(str(s) for s in self.view.sizes)
        return f"ShapedValue(tensor<{dims + 'x' if dims else ''}{self.element_type}>)"
