import textwrap
from pathlib import Path

import numpy as np
import pytest

from tensor_interp import (
    BackendError,
    ContractError,
    ExecutionConfig,
    Program,
    ShapedValue,
    registered_operations,
)

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"

EXTRACT_TWICE = textwrap.dedent(
    """
    func.func @main(%t: tensor<2xf32>, %i: index) -> f32 {
      %e = "tensor.extract"(%t, %i) : (tensor<2xf32>, index) -> f32
      %d = "arith.addf"(%e, %e) : (f32, f32) -> f32
      "func.return"(%d) : (f32) -> ()
    }
    """
)

GATHER = textwrap.dedent(
    """
    func.func @main(%t: tensor<2xf32>) -> tensor<3xf32> {
      %g = "tensor.generate"() ({
      ^bb0(%i: index):
        %e = "tensor.extract"(%t, %i) : (tensor<2xf32>, index) -> f32
        "tensor.yield"(%e) : (f32) -> ()
      }) : () -> tensor<3xf32>
      "func.return"(%g) : (tensor<3xf32>) -> ()
    }
    """
)


def _load(name: str) -> Program:
    return Program((EXAMPLES / name).read_text())


def test_every_tensor_operation_is_registered():
    names = set(registered_operations())
    for name in [
        "tensor.dim",
        "tensor.empty",
        "tensor.extract",
        "tensor.from_elements",
        "tensor.collapse_shape",
        "tensor.expand_shape",
        "tensor.extract_slice",
        "tensor.insert_slice",
        "tensor.parallel_insert_slice",
        "tensor.generate",
        "tensor.insert",
        "tensor.pad",
        "tensor.cast",
    ]:
        assert name in names


def test_generate_and_pad_program():
    (result,) = _load("01_generate_pad.mlir").run(3)
    assert isinstance(result, ShapedValue)
    assert result.element_type == "i64"
    assert result.to_array().tolist() == [-1, 0, 1, 4, -1]


def test_reshape_and_slice_program():
    data = np.arange(24, dtype=np.float32).reshape(2, 3, 4)
    flat, plane, cols = _load("02_reshape_slice.mlir").run(data)
    assert np.array_equal(flat.to_array(), data.reshape(6, 4))
    assert plane.sizes == [3, 4]
    assert np.array_equal(plane.to_array(), data[1])
    assert cols == 4


def test_insert_slice_program_value_and_in_place_forms():
    m = ShapedValue.from_array(np.zeros((3, 4), dtype=np.float32))
    row = np.array([1, 2, 3, 4], dtype=np.float32)
    updated, in_place = _load("03_insert_slice.mlir").run(m, row, 2)
    assert updated.to_array()[2].tolist() == [1, 2, 3, 4]
    assert updated.to_array()[0].tolist() == [0, 0, 0, 0]
    # The parallel form wrote straight into the caller's tensor.
    assert in_place is m
    assert m.to_array()[0].tolist() == [1, 2, 3, 4]
    assert m.to_array()[2].tolist() == [0, 0, 0, 0]


def test_successful_extract():
    runner = Program(EXTRACT_TWICE).compile()
    assert runner(np.array([1.5, 2.5], dtype=np.float32), 1) == [5.0]
    assert runner.failure is None


def test_out_of_bounds_extract_halts_by_default():
    runner = Program(EXTRACT_TWICE).compile(trace=True)
    assert runner(np.array([1.5, 2.5], dtype=np.float32), 5) == [None]
    assert runner.failure == "array index out of bounds"
    assert [entry["name"] for entry in runner.logs] == ["tensor.extract"]


def test_continue_mode_skips_dependent_operations():
    runner = Program(EXTRACT_TWICE).compile(on_failure="continue", trace=True)
    assert runner(np.array([1.5, 2.5], dtype=np.float32), 5) == [None]
    assert runner.failure == "array index out of bounds"
    skipped = [entry["skipped"] for entry in runner.logs]
    assert skipped == [False, True]


def test_failure_inside_generate_region_propagates():
    t = np.array([1.5, 2.5], dtype=np.float32)
    halting = Program(GATHER).compile()
    assert halting(t) == [None]
    assert halting.failure == "array index out of bounds"

    continuing = Program(GATHER).compile(on_failure="continue")
    (result,) = continuing(t)
    assert result.to_array().tolist() == [1.5, 2.5, 0.0]
    assert continuing.failure == "array index out of bounds"


def test_state_is_reset_between_runs():
    runner = Program(EXTRACT_TWICE).compile()
    t = np.array([1.0, 2.0], dtype=np.float32)
    runner(t, 9)
    assert runner.failure is not None
    assert runner(t, 0) == [2.0]
    assert runner.failure is None


def test_scalar_ops_in_regions():
    src = textwrap.dedent(
        """
        func.func @main() -> tensor<2x3xi64> {
          %g = "tensor.generate"() ({
          ^bb0(%i: index, %j: index):
            %c3 = "arith.constant"() {value = 3 : index} : () -> index
            %row = "arith.muli"(%i, %c3) : (index, index) -> index
            %flat = "arith.addi"(%row, %j) : (index, index) -> index
            %odd = "arith.remsi"(%flat, %c3) : (index, index) -> index
            %zero = "arith.constant"() {value = 0 : index} : () -> index
            %is0 = "arith.cmpi"(%odd, %zero) {predicate = eq} : (index, index) -> i1
            %neg = "arith.subi"(%zero, %flat) : (index, index) -> index
            %pick = "arith.select"(%is0, %neg, %flat) : (i1, index, index) -> index
            %v = "arith.index_cast"(%pick) : (index) -> i64
            "tensor.yield"(%v) : (i64) -> ()
          }) : () -> tensor<2x3xi64>
          "func.return"(%g) : (tensor<2x3xi64>) -> ()
        }
        """
    )
    (result,) = Program(src).run()
    assert result.to_array().tolist() == [[0, 1, 2], [-3, 4, 5]]


def test_from_elements_and_insert_program():
    src = textwrap.dedent(
        """
        func.func @main(%a: f32, %b: f32) -> tensor<2xf32> {
          %t = "tensor.from_elements"(%a, %b) : (f32, f32) -> tensor<2xf32>
          %c0 = "arith.constant"() {value = 0 : index} : () -> index
          %r = "tensor.insert"(%b, %t, %c0) : (f32, tensor<2xf32>, index) -> tensor<2xf32>
          "func.return"(%r) : (tensor<2xf32>) -> ()
        }
        """
    )
    (result,) = Program(src).run(1.0, 7.0)
    assert result.to_array().tolist() == [7.0, 7.0]


def test_explain_trace():
    runner = _load("01_generate_pad.mlir").compile(trace=True)
    runner(2)
    text = runner.explain()
    assert "[op] %sq: tensor<2xi64> = tensor.generate" in text
    assert "[op] %padded: tensor<4xi64> = tensor.pad" in text
    payload = runner.explain(json=True)
    assert [entry["name"] for entry in payload["logs"]] == ["tensor.generate", "tensor.pad"]
    assert payload["logs"][1]["results"][0]["shape"] == [4]
    assert payload["failures"] == []


def test_trace_disabled_by_default():
    runner = _load("01_generate_pad.mlir").compile()
    runner(2)
    assert runner.logs == []


def test_unknown_operation_raises_backend_error():
    src = textwrap.dedent(
        """
        func.func @main() {
          %0 = "tensor.bitcast"() : () -> tensor<2xf32>
          "func.return"() : () -> ()
        }
        """
    )
    with pytest.raises(BackendError, match="tensor.bitcast"):
        Program(src).run()


def test_argument_count_and_shape_are_checked():
    program = _load("02_reshape_slice.mlir")
    with pytest.raises(BackendError, match="expects 1 arguments"):
        program.run()
    with pytest.raises(ContractError, match="does not match"):
        program.run(np.zeros((2, 3, 5), dtype=np.float32))


def test_unknown_entry_function():
    with pytest.raises(BackendError, match="Unknown function '@other'"):
        _load("01_generate_pad.mlir").run(1, entry="other")


def test_continue_mode_evaluates_generate_after_unrelated_failure():
    src = textwrap.dedent(
        """
        func.func @main(%t: tensor<2xf32>) -> (f32, tensor<3xi64>) {
          %c7 = "arith.constant"() {value = 7 : index} : () -> index
          %bad = "tensor.extract"(%t, %c7) : (tensor<2xf32>, index) -> f32
          %sq = "tensor.generate"() ({
          ^bb0(%j: index):
            %m = "arith.muli"(%j, %j) : (index, index) -> index
            %v = "arith.index_cast"(%m) : (index) -> i64
            "tensor.yield"(%v) : (i64) -> ()
          }) : () -> tensor<3xi64>
          "func.return"(%bad, %sq) : (f32, tensor<3xi64>) -> ()
        }
        """
    )
    runner = Program(src).compile(on_failure="continue")
    bad, squares = runner(np.array([1.5, 2.5], dtype=np.float32))
    assert bad is None
    assert squares.to_array().tolist() == [0, 1, 4]
    assert runner.state.failures == ["array index out of bounds"]


DIVIDE_BY_OFFSET = textwrap.dedent(
    """
    func.func @main() -> tensor<3xi64> {
      %g = "tensor.generate"() ({
      ^bb0(%i: index):
        %c1 = "arith.constant"() {value = 1 : index} : () -> index
        %c6 = "arith.constant"() {value = 6 : index} : () -> index
        %d = "arith.subi"(%i, %c1) : (index, index) -> index
        %q = "arith.divsi"(%c6, %d) : (index, index) -> index
        %v = "arith.index_cast"(%q) : (index) -> i64
        "tensor.yield"(%v) : (i64) -> ()
      }) : () -> tensor<3xi64>
      "func.return"(%g) : (tensor<3xi64>) -> ()
    }
    """
)


def test_integer_division_by_zero_is_a_failure():
    halting = Program(DIVIDE_BY_OFFSET).compile()
    assert halting() == [None]
    assert halting.failure == "division by zero"

    continuing = Program(DIVIDE_BY_OFFSET).compile(on_failure="continue")
    (result,) = continuing()
    assert result.to_array().tolist() == [-6, 0, 6]
    assert continuing.state.failures == ["division by zero"]
