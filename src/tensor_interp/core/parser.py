from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence, Set

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import LarkError, UnexpectedInput, VisitError

from .exceptions import ParseError, TensorInterpError
from .ir import DYNAMIC, Function, ModuleIR, Operation, Region, TensorType

GRAMMAR_PATH = Path(__file__).with_name("tensor_grammar.lark")

TENSOR_RE = re.compile(r"^tensor<((?:(?:\d+|\?)x)*)([a-z][a-z0-9]*)>$")


@lru_cache(maxsize=1)
def _build_lark() -> Lark:
    grammar = GRAMMAR_PATH.read_text()
    return Lark(
        grammar,
        parser="lalr",
        start="start",
        propagate_positions=True,
        maybe_placeholders=False,
    )


class ArgList(list):
    """Marker list of ``(name, type)`` pairs."""


class TypeGroup(list):
    """Marker list for parenthesised result types."""


class ResultList(list):
    pass


class OperandList(list):
    pass


class RegionList(list):
    pass


class AttrDict(dict):
    pass


@dataclass
class FuncResults:
    types: List[Any]


@dataclass
class FunctionType:
    inputs: List[Any]
    outputs: List[Any]


@dataclass
class BlockLabel:
    args: List[Any] = field(default_factory=list)


def parse_tensor_type(text: str) -> TensorType:
    match = TENSOR_RE.match(text)
    if match is None:
        raise ParseError(f"Malformed tensor type '{text}'")
    dims = [d for d in match.group(1).split("x") if d]
    shape = tuple(DYNAMIC if d == "?" else int(d) for d in dims)
    return TensorType(shape=shape, element_type=match.group(2))


def _number(text: str) -> Any:
    return ast.literal_eval(text.lstrip("+"))


class IRTransformer(Transformer):
    def __init__(self, text: str):
        super().__init__()
        self.text = text
        self.lines = text.splitlines()

    # ------------------------------------------------------------------ helpers
    def _line_text(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1]
        return ""

    def _error(self, meta, message: str) -> NoReturn:
        raise ParseError(
            message,
            line=meta.line,
            column=meta.column,
            line_text=self._line_text(meta.line),
        )

    # -------------------------------------------------------------------- types
    def type_ref(self, items):
        token: Token = items[0]
        if token.type == "TENSOR_TYPE":
            return parse_tensor_type(str(token))
        return str(token)

    def type_group(self, items):
        return TypeGroup(items)

    def function_type(self, items):
        *inputs, outputs = items
        return FunctionType(inputs=list(inputs), outputs=list(outputs))

    def func_results(self, items):
        return FuncResults(types=list(items[0]))

    # --------------------------------------------------------------- attributes
    def attr_dict(self, items):
        return AttrDict(items)

    def attr_entry(self, items):
        key, value = items
        return str(key), value

    def number_attr(self, items):
        return _number(str(items[0]))

    def array_attr(self, items):
        return list(items)

    def dense_array_attr(self, items):
        return [_number(str(token)) for token in items[1:]]

    def dynamic_attr(self, _items):
        return DYNAMIC

    def string_attr(self, items):
        return ast.literal_eval(str(items[0]))

    def symbol_attr(self, items):
        text = str(items[0])
        if text == "true":
            return True
        if text == "false":
            return False
        return text

    # ------------------------------------------------------------------- values
    def arg(self, items):
        name, ty = items
        return str(name), ty

    def arg_list(self, items):
        return ArgList(items)

    def result_list(self, items):
        return ResultList(str(token) for token in items)

    def operand_list(self, items):
        return OperandList(str(token) for token in items)

    # ------------------------------------------------------------------ regions
    def block_label(self, items):
        args: List[Any] = []
        for item in items:
            if isinstance(item, ArgList):
                args = list(item)
        return BlockLabel(args=args)

    def region(self, items):
        label = BlockLabel()
        operations: List[Operation] = []
        for item in items:
            if isinstance(item, BlockLabel):
                label = item
            else:
                operations.append(item)
        return Region(
            arguments=[name for name, _ in label.args],
            argument_types=[ty for _, ty in label.args],
            operations=operations,
        )

    def region_list(self, items):
        return RegionList(items)

    @v_args(meta=True)
    def operation(self, meta, items):
        results: List[str] = []
        operands: List[str] = []
        regions: List[Region] = []
        attributes: Dict[str, Any] = {}
        name: Optional[str] = None
        signature: Optional[FunctionType] = None
        for item in items:
            if isinstance(item, ResultList):
                results = list(item)
            elif isinstance(item, Token) and item.type == "OP_NAME":
                name = str(item)[1:-1]
            elif isinstance(item, OperandList):
                operands = list(item)
            elif isinstance(item, RegionList):
                regions = list(item)
            elif isinstance(item, AttrDict):
                attributes = dict(item)
            elif isinstance(item, FunctionType):
                signature = item
        if name is None or signature is None:
            self._error(meta, "Operation is missing its name or function type")
        if len(signature.inputs) != len(operands):
            self._error(
                meta,
                f"'{name}' has {len(operands)} operands but {len(signature.inputs)} operand types",
            )
        if len(signature.outputs) != len(results):
            self._error(
                meta,
                f"'{name}' binds {len(results)} results but declares {len(signature.outputs)} types",
            )
        return Operation(
            name=name,
            operands=operands,
            results=results,
            attributes=attributes,
            regions=regions,
            operand_types=signature.inputs,
            result_types=signature.outputs,
            line=meta.line,
            column=meta.column,
            source=self._line_text(meta.line).strip(),
        )

    # ---------------------------------------------------------------- functions
    def func(self, items):
        symbol: Token = items[0]
        args: List[Any] = []
        result_types: List[Any] = []
        operations: List[Operation] = []
        for item in items[1:]:
            if isinstance(item, ArgList):
                args = list(item)
            elif isinstance(item, FuncResults):
                result_types = item.types
            elif isinstance(item, Operation):
                operations.append(item)
        return Function(
            name=str(symbol)[1:],
            arguments=[name for name, _ in args],
            argument_types=[ty for _, ty in args],
            operations=operations,
            result_types=result_types,
        )

    def start(self, items):
        return list(items)


def _check_definitions(
    operations: Sequence[Operation],
    defined: Set[str],
    lines: Sequence[str],
) -> None:
    scope = set(defined)
    for op in operations:
        for name in op.operands:
            if name not in scope:
                raise ParseError(
                    f"Use of undefined value {name} in '{op.name}'",
                    line=op.line,
                    column=op.column,
                    line_text=_line_at(lines, op.line),
                )
        for region in op.regions:
            _check_definitions(region.operations, scope | set(region.arguments), lines)
        for name in op.results:
            if name in scope:
                raise ParseError(
                    f"Redefinition of value {name}",
                    line=op.line,
                    column=op.column,
                    line_text=_line_at(lines, op.line),
                )
            scope.add(name)


def _line_at(lines: Sequence[str], line: Optional[int]) -> Optional[str]:
    if line is not None and 1 <= line <= len(lines):
        return lines[line - 1]
    return None


def parse(program_str: str) -> ModuleIR:
    parser = _build_lark()
    lines = program_str.splitlines()
    try:
        tree = parser.parse(program_str)
    except UnexpectedInput as exc:
        line = exc.line or 1
        column = exc.column or 1
        line_text = ""
        if 1 <= line <= len(lines):
            line_text = lines[line - 1]
        raise ParseError(
            "Syntax error while parsing program",
            line=line,
            column=column,
            line_text=line_text,
        ) from exc
    except LarkError as exc:  # pragma: no cover
        raise ParseError(str(exc)) from exc

    try:
        functions: List[Function] = IRTransformer(program_str).transform(tree)
    except VisitError as exc:
        if isinstance(exc.orig_exc, TensorInterpError):
            raise exc.orig_exc from None
        raise

    module = ModuleIR()
    for fn in functions:
        if fn.name in module.functions:
            raise ParseError(f"Duplicate function '@{fn.name}'")
        _check_definitions(fn.operations, set(fn.arguments), lines)
        module.functions[fn.name] = fn
    return module
