from __future__ import annotations

from onnxlower.target_builder.config import (
    LoweringOptions,
    TargetEnvironment,
    resolve_lowering_options,
)
from onnxlower.target_builder.dispatcher import dispatch_node
from onnxlower.target_builder.ir import ModelIR, TargetDialect
from onnxlower.target_builder.lowering import (
    LoweringResult,
    build_support_report,
    lower_onnx_model,
    write_support_report,
)
from onnxlower.target_builder.model_builder import ModelBuilder, ModelConstructionError
from onnxlower.target_builder.op_registry import (
    NodeValidationError,
    SupportResult,
    check_node_support,
    get_supported_onnx_ops,
)

__all__ = [
    "LoweringOptions",
    "TargetEnvironment",
    "resolve_lowering_options",
    "dispatch_node",
    "ModelIR",
    "TargetDialect",
    "LoweringResult",
    "build_support_report",
    "lower_onnx_model",
    "write_support_report",
    "ModelBuilder",
    "ModelConstructionError",
    "NodeValidationError",
    "SupportResult",
    "check_node_support",
    "get_supported_onnx_ops",
]
