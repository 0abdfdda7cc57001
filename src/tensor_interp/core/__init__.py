"""Core runtime modules for tensor-interp."""

__all__ = [
    "arith_ops",
    "exceptions",
    "interpreter",
    "ir",
    "parser",
    "program",
    "registry",
    "shape_utils",
    "shaped_value",
    "state",
    "tensor_ops",
]
