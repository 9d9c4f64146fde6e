from onnxlower.target_builder import (
    ModelConstructionError,
    NodeValidationError,
    TargetDialect,
    build_support_report,
    check_node_support,
    lower_onnx_model,
    write_support_report,
)

__version__ = '0.1.0'
