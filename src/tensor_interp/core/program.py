import hashlib
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .interpreter import ExecutionConfig, Interpreter
from .ir import ModuleIR, Operation, json_ready
from .parser import parse


def compute_program_hash(src: str) -> str:
    return hashlib.sha256(src.encode("utf-8")).hexdigest()


class Program:
    def __init__(self, src: str):
        self.src = src
        self.ir: ModuleIR = parse(src)
        self.digest = compute_program_hash(self.src)

    def compile(self, config: Optional[ExecutionConfig] = None, **overrides: Any) -> Interpreter:
        """Return an interpreter bound to this program.

        Keyword overrides (``entry``, ``on_failure``, ``trace``) are applied on
        top of ``config``.
        """
        cfg = config or ExecutionConfig()
        if overrides:
            cfg = replace(cfg, **overrides)
        return Interpreter(self.ir, config=cfg)

    def run(self, *args: Any, config: Optional[ExecutionConfig] = None, **overrides: Any) -> List[Any]:
        return self.compile(config, **overrides)(*args)

    def explain(self, *, json: bool = False) -> Any:
        functions: List[Dict[str, Any]] = []
        for fn in self.ir.functions.values():
            functions.append(
                {
                    "name": fn.name,
                    "arguments": [
                        {"name": name, "type": str(ty)}
                        for name, ty in zip(fn.arguments, fn.argument_types)
                    ],
                    "operations": [_describe(op) for op in fn.operations],
                }
            )
        payload = {
            "digest": self.digest,
            "operations": self.ir.operation_names(),
            "functions": functions,
        }

        if json:
            return json_ready(payload)

        lines: List[str] = []
        for fn in functions:
            args = ", ".join(f"{arg['name']}: {arg['type']}" for arg in fn["arguments"])
            lines.append(f"[func] @{fn['name']}({args})")
            for entry in fn["operations"]:
                lines.extend(_format_op(entry, depth=1))
        return "\n".join(lines)


def _describe(op: Operation) -> Dict[str, Any]:
    return {
        "name": op.name,
        "results": list(op.results),
        "operands": list(op.operands),
        "result_types": [str(ty) for ty in op.result_types],
        "attributes": dict(op.attributes),
        "regions": [[_describe(inner) for inner in region.operations] for region in op.regions],
        "line": op.line,
    }


def _format_op(entry: Dict[str, Any], depth: int) -> List[str]:
    indent = "  " * depth
    bound = ", ".join(entry["results"])
    prefix = f"{bound} = " if bound else ""
    types = ", ".join(entry["result_types"]) or "()"
    lines = [f"{indent}[op] {prefix}{entry['name']}({', '.join(entry['operands'])}) -> {types}"]
    for region in entry["regions"]:
        for inner in region:
            lines.extend(_format_op(inner, depth + 1))
    return lines
