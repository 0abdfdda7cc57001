from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .exceptions import ContractError
from .ir import Operation, is_dynamic
from .shaped_value import ShapedValue, View, num_elements

Reassociation = Sequence[Sequence[int]]


@dataclass
class OffsetsSizesStrides:
    offsets: List[int]
    sizes: List[int]
    strides: List[int]


def replace_dynamic_vals(static_vals: Sequence[int], dynamic_vals: Sequence[int]) -> List[int]:
    """Substitute runtime values for the dynamic entries of ``static_vals``, in order."""
    out: List[int] = []
    pending = iter(dynamic_vals)
    consumed = 0
    for value in static_vals:
        if is_dynamic(value):
            try:
                out.append(int(next(pending)))
            except StopIteration:
                raise ContractError(
                    f"Expected more than {consumed} dynamic values for {list(static_vals)}"
                ) from None
            consumed += 1
        else:
            out.append(int(value))
    if consumed != len(dynamic_vals):
        raise ContractError(
            f"Got {len(dynamic_vals)} dynamic values but {list(static_vals)} "
            f"has {consumed} dynamic entries"
        )
    return out


def extract_offsets_sizes_strides(
    dynamic_offsets: Sequence[int],
    dynamic_sizes: Sequence[int],
    dynamic_strides: Sequence[int],
    op: Operation,
) -> OffsetsSizesStrides:
    return OffsetsSizesStrides(
        offsets=replace_dynamic_vals(op.int_list("static_offsets"), dynamic_offsets),
        sizes=replace_dynamic_vals(op.int_list("static_sizes"), dynamic_sizes),
        strides=replace_dynamic_vals(op.int_list("static_strides"), dynamic_strides),
    )


def collapsed_sizes(sizes: Sequence[int], reassociation: Reassociation) -> List[int]:
    out: List[int] = []
    for group in reassociation:
        size = 1
        for dim in group:
            size *= int(sizes[dim])
        out.append(size)
    return out


def expanded_sizes(
    sizes: Sequence[int],
    reassociation: Reassociation,
    result_shape: Sequence[int],
) -> List[int]:
    """Resolve the expanded shape; each group may hold at most one dynamic size."""
    out = [int(s) for s in result_shape]
    if len(reassociation) != len(sizes):
        raise ContractError(
            f"Reassociation has {len(reassociation)} groups for an operand of rank {len(sizes)}"
        )
    for src_dim, group in enumerate(reassociation):
        size = int(sizes[src_dim])
        dynamic_dim: Optional[int] = None
        for dim in group:
            if is_dynamic(out[dim]):
                if dynamic_dim is not None:
                    raise ContractError(
                        f"Reassociation group {list(group)} has more than one dynamic size"
                    )
                dynamic_dim = dim
            elif out[dim]:
                size //= out[dim]
        if dynamic_dim is not None:
            out[dynamic_dim] = size
    return out


def reshape_tensor(value: ShapedValue, sizes: Sequence[int]) -> ShapedValue:
    """Reinterpret ``value`` with new sizes, aliasing its buffer when contiguous."""
    sizes = [int(s) for s in sizes]
    source = value if value.view.is_contiguous() else _compact(value)
    if source.view.num_elements != num_elements(sizes):
        raise ContractError(
            f"Cannot reshape {source.view.sizes} ({source.view.num_elements} elements) to {sizes}"
        )
    return ShapedValue(source.element_type, View.contiguous(sizes, source.view.offset), source.storage)


def _compact(value: ShapedValue) -> ShapedValue:
    out = value.typed_alike(value.view.sizes)
    out.fill(value.extract_element)
    return out
