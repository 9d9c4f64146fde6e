from __future__ import annotations

from typing import Any, Optional, Tuple

import numpy as np

from onnxlower.target_builder.op_builders.shared import clamp, require_static_shape


def compute_shape_slice(rank: int, start: int = 0, end: Optional[int] = None) -> Tuple[int, int, int]:
    """Normalizes Shape's start/end the way ONNX does.

    Negative values count from the back, then both ends are clamped into
    ``[0, rank]`` with ``end >= start``. Returns ``(start, end, length)``.
    """
    rank = int(rank)
    start = int(start)
    end = rank if end is None else int(end)
    true_start = clamp(start + (rank if start < 0 else 0), 0, rank)
    true_end = clamp(end + (rank if end < 0 else 0), true_start, rank)
    return true_start, true_end, true_end - true_start


def build_shape_op(node: Any, ctx: Any) -> None:
    # The target has no shape query, so the static dims are baked into a
    # constant and the requested window is sliced out of it.
    input_name = node.inputs[0].name
    output_name = node.outputs[0].name
    input_shape = require_static_shape(node, ctx, input_name)
    rank = len(input_shape)

    if ctx.int64_supported:
        shape_dtype, shape_target_dtype = np.int64, "INT64"
    else:
        shape_dtype, shape_target_dtype = np.int32, "INT32"
    shape_const = ctx.materialize_constant(
        node,
        f"{node.name}_shape",
        np.asarray(input_shape, dtype=shape_dtype),
    )

    start, _, length = compute_shape_slice(
        rank,
        node.attrs.get("start", 0),
        node.attrs.get("end", rank),
    )

    op = ctx.create_target_op(node, program_op_type="slice_by_size", layer_type="slice_static")
    ctx.bind_input(op, "x", shape_const)
    ctx.bind_ints_param(op, "begin", [start])
    ctx.bind_ints_param(op, "size", [length])
    ctx.bind_output(op, output_name, dtype=shape_target_dtype, shape=[length])
    ctx.add_target_op(op)
