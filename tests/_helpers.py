from typing import Any, Optional, Sequence

import numpy as np

from tensor_interp import Operation, ShapedValue, TensorType


def tensor(values: Any, element_type: Optional[str] = None) -> ShapedValue:
    return ShapedValue.from_array(np.asarray(values), element_type)


def ttype(*shape: int, element_type: str = "i64") -> TensorType:
    return TensorType(tuple(shape), element_type)


def make_op(name: str, result_types: Sequence[Any] = (), **attributes: Any) -> Operation:
    return Operation(name=name, attributes=dict(attributes), result_types=list(result_types))
