from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _load_version

from .core.exceptions import BackendError, ContractError, ParseError, TensorInterpError
from .core.interpreter import ExecutionConfig, Interpreter
from .core.ir import DYNAMIC, Operation, Region, TensorType
from .core.program import Program
from .core.registry import registered_operations
from .core.shaped_value import ShapedValue, View
from .core.state import InterpreterState, interpret

try:
    __version__ = _load_version("tensor-interp")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "Program",
    "ExecutionConfig",
    "Interpreter",
    "InterpreterState",
    "interpret",
    "ShapedValue",
    "View",
    "TensorType",
    "Operation",
    "Region",
    "DYNAMIC",
    "registered_operations",
    "TensorInterpError",
    "ContractError",
    "ParseError",
    "BackendError",
    "__version__",
]
