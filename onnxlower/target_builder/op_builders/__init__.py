from onnxlower.target_builder.op_builders.elementwise import (
    build_activation_op,
    build_identity_op,
)
from onnxlower.target_builder.op_builders.norm import (
    batch_normalization_initializers_to_skip,
    build_batch_normalization_op,
)
from onnxlower.target_builder.op_builders.shape import (
    build_shape_op,
    compute_shape_slice,
)

__all__ = [
    "build_activation_op",
    "build_identity_op",
    "batch_normalization_initializers_to_skip",
    "build_batch_normalization_op",
    "build_shape_op",
    "compute_shape_slice",
]
