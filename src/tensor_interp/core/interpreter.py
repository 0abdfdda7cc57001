from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from . import arith_ops, tensor_ops  # noqa: F401 - registers evaluators
from .exceptions import BackendError, ContractError
from .ir import ModuleIR, Operation, Region, TensorType, is_dynamic, json_ready
from .registry import lookup
from .shaped_value import ShapedValue, numpy_dtype
from .state import InterpreterState, SubProgram

logger = logging.getLogger(__name__)

TERMINATORS = {"func.return", "tensor.yield"}


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Switches controlling how the interpreter reacts to recorded failures.

    * ``on_failure="halt"`` (default) stops the current block as soon as an
      operation records a failure; results that were not computed are ``None``.
    * ``on_failure="continue"`` keeps evaluating. Operations whose operands
      are ``None`` are skipped and produce ``None`` results.
    * ``trace`` records one log entry per top-level operation for ``explain``.
    """

    entry: str = "main"
    on_failure: str = "halt"  # "halt" | "continue"
    trace: bool = False

    def normalized(self) -> "ExecutionConfig":
        entry = (self.entry or "").strip().lstrip("@")
        if not entry:
            raise ValueError("ExecutionConfig.entry must name a function")
        on_failure = (self.on_failure or "halt").lower()
        if on_failure not in {"halt", "continue"}:
            raise ValueError(f"Unsupported failure mode: {self.on_failure}")
        return replace(self, entry=entry, on_failure=on_failure, trace=bool(self.trace))


class Interpreter:
    def __init__(self, module: ModuleIR, config: Optional[ExecutionConfig] = None):
        self.module = module
        self.config = (config or ExecutionConfig()).normalized()
        self.state = InterpreterState()
        self.logs: List[Dict[str, Any]] = []

    def __call__(self, *args: Any, entry: Optional[str] = None) -> List[Any]:
        return self.run(*args, entry=entry)

    @property
    def failure(self) -> Optional[str]:
        return self.state.failure_message

    def run(self, *args: Any, entry: Optional[str] = None) -> List[Any]:
        fn = self.module.function(entry or self.config.entry)
        if len(args) != len(fn.arguments):
            raise BackendError(
                f"@{fn.name} expects {len(fn.arguments)} arguments, got {len(args)}"
            )
        self.state = InterpreterState()
        self.logs = []
        values = [_coerce_argument(value, ty) for value, ty in zip(args, fn.argument_types)]
        return self._run_block(self.state, fn.body, values, {})

    # ------------------------------------------------------------------ blocks
    def _run_block(
        self,
        state: InterpreterState,
        region: Region,
        args: Sequence[Any],
        outer_env: Dict[str, Any],
    ) -> List[Any]:
        if len(args) != len(region.arguments):
            raise ContractError(
                f"Region expects {len(region.arguments)} arguments, got {len(args)}"
            )
        env = dict(outer_env)
        env.update(zip(region.arguments, args))
        failures_before = len(state.failures)
        for op in region.operations:
            if op.name in TERMINATORS:
                return [_resolve(env, name) for name in op.operands]
            self._execute(state, op, env)
            if len(state.failures) > failures_before and self.config.on_failure == "halt":
                logger.debug("halting block after failure in %s", op.name)
                return [None] * _num_yielded(region)
        raise ContractError("Block has no terminator")

    def _sub_program(self, region: Region, env: Dict[str, Any]) -> SubProgram:
        def run(state: InterpreterState, args: Sequence[int]) -> List[Any]:
            return self._run_block(state, region, args, env)

        return run

    # -------------------------------------------------------------- operations
    def _execute(self, state: InterpreterState, op: Operation, env: Dict[str, Any]) -> None:
        entry = lookup(op.name)
        values = [_resolve(env, name) for name in op.operands]
        if any(value is None for value in values):
            logger.debug("skipping %s: operand unavailable after failure", op.name)
            env.update((name, None) for name in op.results)
            self._log(state, op, [None] * len(op.results), 0.0, skipped=True)
            return

        args = entry.unpack(op, values)
        if entry.takes_regions:
            args.extend(self._sub_program(region, env) for region in op.regions)

        logger.debug("dispatch %s", op.name)
        start = time.perf_counter()
        out = entry.fn(state, op, *args)
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        results = out if isinstance(out, list) else [out]
        if len(results) != len(op.results):
            raise ContractError(
                f"{op.name} produced {len(results)} results but binds {len(op.results)}"
            )
        env.update(zip(op.results, results))
        self._log(state, op, results, elapsed_ms)

    def _log(
        self,
        state: InterpreterState,
        op: Operation,
        results: Sequence[Any],
        elapsed_ms: float,
        *,
        skipped: bool = False,
    ) -> None:
        if not self.config.trace or state.depth > 0:
            return
        self.logs.append(
            {
                "kind": "op",
                "name": op.name,
                "line": op.line,
                "results": [
                    {"name": name, **_summarize(value)} for name, value in zip(op.results, results)
                ],
                "time_ms": elapsed_ms,
                "skipped": skipped,
                "failure": state.failure_message,
            }
        )

    def explain(self, *, json: bool = False) -> Any:
        total_ms = sum(entry["time_ms"] for entry in self.logs)
        if json:
            return json_ready(
                {
                    "logs": self.logs,
                    "failures": list(self.state.failures),
                    "total_time_ms": total_ms,
                }
            )
        lines: List[str] = []
        for entry in self.logs:
            bound = ", ".join(
                f"{res['name']}: {res.get('type', '-')}" for res in entry["results"]
            )
            prefix = f"{bound} = " if bound else ""
            suffix = " (skipped)" if entry["skipped"] else f" {entry['time_ms']:.3f}ms"
            lines.append(f"[op] {prefix}{entry['name']}{suffix}")
        for message in self.state.failures:
            lines.append(f"[failure] {message}")
        lines.append(f"Total: {total_ms:.3f}ms")
        return "\n".join(lines)


def _resolve(env: Dict[str, Any], name: str) -> Any:
    try:
        return env[name]
    except KeyError:
        raise BackendError(f"Use of undefined value {name}") from None


def _num_yielded(region: Region) -> int:
    for op in reversed(region.operations):
        if op.name in TERMINATORS:
            return len(op.operands)
    return 0


def _coerce_argument(value: Any, ty: Any) -> Any:
    if isinstance(ty, TensorType):
        if not isinstance(value, ShapedValue):
            value = ShapedValue.from_array(value, ty.element_type)
        if len(value.sizes) != ty.rank or any(
            not is_dynamic(want) and want != got for want, got in zip(ty.shape, value.sizes)
        ):
            raise ContractError(f"Argument of shape {value.sizes} does not match {ty}")
        return value
    if isinstance(ty, str):
        return numpy_dtype(ty).type(value)
    return value


def _summarize(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"type": None}
    if isinstance(value, ShapedValue):
        return {
            "type": str(TensorType(tuple(value.sizes), value.element_type)),
            "shape": list(value.sizes),
        }
    if isinstance(value, (np.generic, int, float, bool)):
        return {"type": type(value).__name__, "value": json_ready(value)}
    return {"type": type(value).__name__}
