from __future__ import annotations

from typing import Any, List

import numpy as np

from onnxlower.target_builder.op_builders.shared import require_initializer


def batch_normalization_initializers_to_skip(node: Any) -> List[str]:
    # scale, B, mean, var are folded into the emitted op. Only input 0 stays a value.
    return [i.name for i in node.inputs[1:5]]


def build_batch_normalization_op(node: Any, ctx: Any) -> None:
    input_name = node.inputs[0].name
    output_name = node.outputs[0].name
    scale_name = node.inputs[1].name
    bias_name = node.inputs[2].name
    mean_name = node.inputs[3].name
    var_name = node.inputs[4].name

    scale = require_initializer(node, ctx, 1, "scale")
    bias = require_initializer(node, ctx, 2, "B")
    mean = require_initializer(node, ctx, 3, "mean")
    var = require_initializer(node, ctx, 4, "var")
    eps = float(node.attrs.get("epsilon", 1e-5))
    channels = int(np.asarray(scale).reshape(-1).shape[0])

    op = ctx.create_target_op(node, program_op_type="batch_norm", layer_type="batchnorm")
    ctx.bind_input(op, "x", input_name)
    ctx.bind_tensor_param(op, "mean", mean, base_name=f"{mean_name}mean")
    ctx.bind_tensor_param(op, "variance", var, base_name=f"{var_name}variance")
    ctx.bind_tensor_param(op, "gamma", scale, base_name=scale_name)
    ctx.bind_tensor_param(op, "beta", bias, base_name=bias_name)
    ctx.bind_scalar_param(op, "epsilon", eps, like=input_name)
    ctx.set_layer_params(
        op,
        channels=channels,
        compute_mean_var=False,
        instance_normalization=False,
    )
    ctx.bind_output(op, output_name)
    ctx.add_target_op(op)
