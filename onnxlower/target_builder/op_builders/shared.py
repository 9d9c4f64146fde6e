from __future__ import annotations

from typing import Any, List

import numpy as np

from onnxlower.target_builder.model_builder import ModelConstructionError


def clamp(value: int, lower: int, upper: int) -> int:
    return max(int(lower), min(int(value), int(upper)))


def require_initializer(node: Any, ctx: Any, input_index: int, input_label: str) -> np.ndarray:
    """Fetches a constant input the support check already certified.

    A miss here means the initializer store changed under a running session.
    """
    tensor_name = node.inputs[input_index].name
    value = ctx.get_constant_array(tensor_name)
    if value is None:
        raise ModelConstructionError(
            f"{input_label} initializer is missing at emission time. tensor={tensor_name}",
            node_name=node.name,
            node_op=node.op,
        )
    return np.asarray(value)


def require_static_shape(node: Any, ctx: Any, tensor_name: str) -> List[int]:
    shape = ctx.get_tensor_shape(tensor_name)
    if shape is None or any(int(d) < 0 for d in shape):
        raise ModelConstructionError(
            f"Static shape is required at emission time. tensor={tensor_name} shape={shape}",
            node_name=node.name,
            node_op=node.op,
        )
    return [int(d) for d in shape]
