from __future__ import annotations

from typing import Any


def build_activation_op(node: Any, ctx: Any, program_op_type: str, non_linearity: str) -> None:
    input_name = node.inputs[0].name
    output_name = node.outputs[0].name
    op = ctx.create_target_op(node, program_op_type=program_op_type, layer_type="activation")
    ctx.bind_input(op, "x", input_name)
    ctx.set_layer_params(op, non_linearity=non_linearity)
    ctx.bind_output(op, output_name)
    ctx.add_target_op(op)


def build_identity_op(node: Any, ctx: Any) -> None:
    input_name = node.inputs[0].name
    output_name = node.outputs[0].name
    op = ctx.create_target_op(node, program_op_type="identity", layer_type="activation")
    ctx.bind_input(op, "x", input_name)
    ctx.set_layer_params(op, non_linearity="LINEAR", alpha=1.0, beta=0.0)
    ctx.bind_output(op, output_name)
    ctx.add_target_op(op)
