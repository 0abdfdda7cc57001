"""Evaluators for the ``tensor`` operations.

Each evaluator receives the ambient :class:`InterpreterState`, the operation
(for its static attributes and result types) and the already-resolved
operand values. Out-of-bounds element accesses are reported with
``state.add_failure`` and never raised; malformed attributes and slices
reaching outside their tensor raise :class:`ContractError`.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from .exceptions import ContractError
from .ir import Operation, TensorType
from .registry import (
    dynamic_list,
    dynamic_segments,
    leading_then_indices,
    register,
    variadic,
)
from .shape_utils import (
    OffsetsSizesStrides,
    collapsed_sizes,
    expanded_sizes,
    extract_offsets_sizes_strides,
    replace_dynamic_vals,
    reshape_tensor,
)
from .shaped_value import Index, ShapedValue
from .state import InterpreterState, SubProgram, interpret

OUT_OF_BOUNDS = "array index out of bounds"

_SLICE_ATTRS = ("static_offsets", "static_sizes", "static_strides")


def _tensor_result_type(op: Operation) -> TensorType:
    ty = op.result_type
    if not isinstance(ty, TensorType):
        raise ContractError(f"{op.name} must produce a tensor, got {ty}")
    return ty


def _single_value(op: Operation, values: Sequence[Any]) -> Any:
    if len(values) != 1:
        raise ContractError(f"{op.name} region must yield exactly one value, got {len(values)}")
    return values[0]


def _region_value(
    state: InterpreterState, op: Operation, body: SubProgram, index: Index, default: Any
) -> Any:
    # Only failures recorded by this call discard the yielded value.
    before = len(state.failures)
    values = interpret(state, body, index)
    if len(state.failures) > before:
        return default
    value = _single_value(op, values)
    return default if value is None else value


@register("tensor.dim")
def dim(state: InterpreterState, op: Operation, tensor: ShapedValue, index: int) -> Optional[int]:
    index = int(index)
    if not 0 <= index < tensor.rank:
        state.add_failure("dimension index out of bounds")
        return None
    return tensor.view.sizes[index]


@register("tensor.empty", unpack=dynamic_list)
def empty(state: InterpreterState, op: Operation, dynamic_sizes: Sequence[int]) -> ShapedValue:
    ty = _tensor_result_type(op)
    shape = replace_dynamic_vals(ty.shape, dynamic_sizes)
    return ShapedValue.make_tensor(ty.element_type, shape)


@register("tensor.extract", unpack=leading_then_indices(1))
def extract(
    state: InterpreterState, op: Operation, tensor: ShapedValue, indices: Sequence[int]
) -> Any:
    if not tensor.view.in_bounds(indices):
        state.add_failure(OUT_OF_BOUNDS)
        return None
    return tensor.extract_element(indices)


@register("tensor.from_elements", unpack=variadic)
def from_elements(state: InterpreterState, op: Operation, elements: Sequence[Any]) -> ShapedValue:
    ty = _tensor_result_type(op)
    result = ShapedValue.make_tensor(ty.element_type, ty.shape)
    if len(elements) != result.view.num_elements:
        raise ContractError(
            f"{op.name} got {len(elements)} elements for a tensor of shape {list(ty.shape)}"
        )
    for index, element in zip(result.view.indices(), elements):
        result.insert_element(index, element)
    return result


@register("tensor.collapse_shape")
def collapse_shape(state: InterpreterState, op: Operation, tensor: ShapedValue) -> ShapedValue:
    sizes = collapsed_sizes(tensor.view.sizes, op.attr("reassociation"))
    return reshape_tensor(tensor, sizes)


@register("tensor.expand_shape")
def expand_shape(state: InterpreterState, op: Operation, tensor: ShapedValue) -> ShapedValue:
    ty = _tensor_result_type(op)
    sizes = expanded_sizes(tensor.view.sizes, op.attr("reassociation"), ty.shape)
    return reshape_tensor(tensor, sizes)


def _check_slice_bounds(op: Operation, v: OffsetsSizesStrides, extents: Sequence[int]) -> None:
    if len(v.offsets) != len(extents):
        raise ContractError(
            f"{op.name}: slice of rank {len(v.offsets)} on a tensor of rank {len(extents)}"
        )
    for dim_pos, (offset, size, stride, extent) in enumerate(
        zip(v.offsets, v.sizes, v.strides, extents)
    ):
        if size == 0:
            continue
        last = offset + (size - 1) * stride
        if min(offset, last) < 0 or max(offset, last) >= extent:
            raise ContractError(
                f"{op.name}: slice dim {dim_pos} spans [{offset}, {last}] "
                f"outside a dimension of size {extent}"
            )


@register("tensor.extract_slice", unpack=dynamic_segments(1, *_SLICE_ATTRS))
def extract_slice(
    state: InterpreterState,
    op: Operation,
    tensor: ShapedValue,
    dynamic_offsets: Sequence[int],
    dynamic_sizes: Sequence[int],
    dynamic_strides: Sequence[int],
) -> ShapedValue:
    v = extract_offsets_sizes_strides(dynamic_offsets, dynamic_sizes, dynamic_strides, op)
    _check_slice_bounds(op, v, tensor.view.sizes)
    rank = len(v.offsets)
    out = tensor.typed_alike(v.sizes)

    def element(index: Index) -> Any:
        src = [index[i] * v.strides[i] + v.offsets[i] for i in range(rank)]
        return tensor.extract_element(src)

    out.fill(element)

    # Unit dims of the slice that the declared result does not carry are
    # dropped, matching result dims positionally.
    result_sizes = _tensor_result_type(op).shape
    static_sizes = op.int_list("static_sizes")
    out_view = out.view
    num_dropped = 0
    dim_pos = 0
    while dim_pos < out_view.rank:
        if static_sizes[num_dropped + dim_pos] == 1 and (
            dim_pos >= len(result_sizes) or result_sizes[dim_pos] != 1
        ):
            del out_view.sizes[dim_pos]
            del out_view.strides[dim_pos]
            num_dropped += 1
        else:
            dim_pos += 1
    return out


def _inserted_unit_dims(op: Operation, src_sizes: Sequence[int]) -> List[int]:
    inserted: List[int] = []
    pos = 0
    for dim_pos, size in enumerate(op.int_list("static_sizes")):
        if pos == len(src_sizes) or (src_sizes[pos] != size and size >= 0):
            if size != 1:
                raise ContractError(
                    f"{op.name}: source shape {list(src_sizes)} does not match slice sizes "
                    f"{op.int_list('static_sizes')}; only unit dims can be inserted"
                )
            inserted.append(dim_pos)
        else:
            pos += 1
    if pos != len(src_sizes):
        raise ContractError(
            f"{op.name}: source of rank {len(src_sizes)} has more dims than the slice"
        )
    return inserted


@register(
    "tensor.insert_slice",
    "tensor.parallel_insert_slice",
    unpack=dynamic_segments(2, *_SLICE_ATTRS),
)
def insert_slice(
    state: InterpreterState,
    op: Operation,
    src: ShapedValue,
    dest: ShapedValue,
    dynamic_offsets: Sequence[int],
    dynamic_sizes: Sequence[int],
    dynamic_strides: Sequence[int],
) -> List[ShapedValue]:
    # Without a result the op writes straight into ``dest``.
    produces_value = op.num_results == 1
    if produces_value:
        dest = dest.clone()
    v = extract_offsets_sizes_strides(dynamic_offsets, dynamic_sizes, dynamic_strides, op)
    _check_slice_bounds(op, v, dest.view.sizes)
    inserted_dims = _inserted_unit_dims(op, src.view.sizes)

    for src_index in src.view.indices():
        padded = list(src_index)
        for dim_pos in inserted_dims:
            padded.insert(dim_pos, 0)
        dst_index = [i * stride + offset for i, stride, offset in zip(padded, v.strides, v.offsets)]
        dest.insert_element(dst_index, src.extract_element(src_index))
    return [dest] if produces_value else []


@register("tensor.generate", unpack=dynamic_list, regions=True)
def generate(
    state: InterpreterState,
    op: Operation,
    dynamic_sizes: Sequence[int],
    body: SubProgram,
) -> ShapedValue:
    ty = _tensor_result_type(op)
    sizes = replace_dynamic_vals(ty.shape, dynamic_sizes)
    result = ShapedValue.make_tensor(ty.element_type, sizes)

    def element(index: Index) -> Any:
        return _region_value(state, op, body, index, result.extract_element(index))

    result.fill(element)
    return result


@register("tensor.insert", unpack=leading_then_indices(2))
def insert(
    state: InterpreterState,
    op: Operation,
    value: Any,
    tensor: ShapedValue,
    indices: Sequence[int],
) -> ShapedValue:
    result = tensor.clone()
    if result.view.in_bounds(indices):
        result.insert_element(indices, value)
    else:
        state.add_failure(OUT_OF_BOUNDS)
    return result


@register("tensor.pad", unpack=dynamic_segments(1, "static_low", "static_high"), regions=True)
def pad(
    state: InterpreterState,
    op: Operation,
    tensor: ShapedValue,
    dynamic_lows: Sequence[int],
    dynamic_highs: Sequence[int],
    body: SubProgram,
) -> ShapedValue:
    lows = replace_dynamic_vals(op.int_list("static_low"), dynamic_lows)
    highs = replace_dynamic_vals(op.int_list("static_high"), dynamic_highs)
    view = tensor.view
    result_sizes = [size + low + high for size, low, high in zip(view.sizes, lows, highs)]
    result = tensor.typed_alike(result_sizes)

    def element(out_index: Index) -> Any:
        in_index = [i - low for i, low in zip(out_index, lows)]
        if view.in_bounds(in_index):
            return tensor.extract_element(in_index)
        return _region_value(state, op, body, out_index, result.extract_element(out_index))

    result.fill(element)
    return result


@register("tensor.cast")
def cast(state: InterpreterState, op: Operation, tensor: ShapedValue) -> ShapedValue:
    return tensor
