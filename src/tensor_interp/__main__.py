from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

import numpy as np

from .core.interpreter import ExecutionConfig
from .core.program import Program
from .core.shaped_value import ShapedValue


def _load_program(path: Path) -> Program:
    try:
        source = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise SystemExit(f"Program file not found: {path}") from exc
    return Program(source)


def _load_argument(spec: str) -> Any:
    path = Path(spec)
    lowered = spec.lower()
    if lowered.endswith(".npy") and path.exists():
        return np.load(path)
    if lowered.endswith(".json") and path.exists():
        return json.loads(path.read_text(encoding="utf-8"))
    try:
        return json.loads(spec)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Argument is neither a .npy/.json file nor JSON: {spec}") from exc


def _print_result(position: int, value: Any) -> None:
    print(f"# result {position}")
    if isinstance(value, ShapedValue):
        np.set_printoptions(suppress=True)
        print(value.to_array())
    else:
        print(value)


def _run(
    program_path: Path,
    entry: str,
    arg_specs: List[str],
    on_failure: str,
    explain: bool,
) -> int:
    program = _load_program(program_path)
    runner = program.compile(ExecutionConfig(entry=entry, on_failure=on_failure, trace=explain))
    args = [_load_argument(spec) for spec in arg_specs]
    results = runner(*args)
    for position, value in enumerate(results):
        _print_result(position, value)
    if explain:
        print(runner.explain())
    if runner.failure is not None:
        print(f"error: {runner.failure}", file=sys.stderr)
        return 1
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tensor-interp command line utilities")
    subparsers = parser.add_subparsers(dest="cmd")

    run_parser = subparsers.add_parser("run", help="Interpret a function of a program file")
    run_parser.add_argument("program", type=Path, help="Path to the program file")
    run_parser.add_argument(
        "--entry",
        default="main",
        help="Function to run (default: main)",
    )
    run_parser.add_argument(
        "--arg",
        dest="args",
        action="append",
        default=[],
        help="Function argument: a .npy/.json file or an inline JSON value; repeat per argument",
    )
    run_parser.add_argument(
        "--continue-on-failure",
        action="store_true",
        help="Keep evaluating after an operation records a failure",
    )
    run_parser.add_argument(
        "--explain",
        action="store_true",
        help="Print a per-operation trace after the results",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "run":
        status = _run(
            args.program,
            entry=args.entry,
            arg_specs=args.args,
            on_failure="continue" if args.continue_on_failure else "halt",
            explain=args.explain,
        )
        if status:
            raise SystemExit(status)
        return

    parser.print_help()


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
