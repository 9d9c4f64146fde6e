from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from onnxlower.target_builder.op_builders import (
    batch_normalization_initializers_to_skip,
    build_activation_op,
    build_batch_normalization_op,
    build_identity_op,
    build_shape_op,
)
from onnxlower.target_builder.platform_exclusions import find_platform_exclusion
from onnxlower.utils.logging import *


class NodeValidationError(ValueError):
    def __init__(
        self,
        *,
        reason_code: str,
        message: str,
        node_name: str,
        node_op: str,
    ) -> None:
        super().__init__(message)
        self.reason_code = str(reason_code)
        self.node_name = str(node_name)
        self.node_op = str(node_op)
        self.message = str(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_name": self.node_name,
            "onnx_op": self.node_op,
            "reason_code": self.reason_code,
            "message": self.message,
        }


@dataclass(frozen=True)
class ValidationSpec:
    min_inputs: int = 0
    max_inputs: Optional[int] = None
    min_outputs: int = 1
    max_outputs: Optional[int] = 1
    # Extra outputs mean the exporter kept training-only values (e.g. running stats).
    training_mode_outputs: bool = False
    required_attrs: List[str] = field(default_factory=list)
    input_rank: Dict[int, List[int]] = field(default_factory=dict)
    static_shape_inputs: List[int] = field(default_factory=list)
    input_dtypes: Dict[int, List[str]] = field(default_factory=dict)
    const_inputs: Dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DispatchEntry:
    onnx_op: str
    program_ops: List[str] = field(default_factory=list)
    layer_types: List[str] = field(default_factory=list)
    builder: Optional[Callable[[Any, Any], None]] = None
    validation: ValidationSpec = field(default_factory=ValidationSpec)
    extra_validator: Optional[Callable[[Any, Any], None]] = None
    initializers_to_skip: Optional[Callable[[Any], List[str]]] = None
    min_opset: int = 1
    max_opset: Optional[int] = None


@dataclass(frozen=True)
class SupportResult:
    supported: bool
    node_name: str
    node_op: str
    reason_code: Optional[str] = None
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.supported

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_name": self.node_name,
            "onnx_op": self.node_op,
            "supported": self.supported,
            "reason_code": self.reason_code,
            "message": self.message,
        }


class DispatchRegistry:
    """ONNX op type -> DispatchEntry. Frozen once the catalog is registered."""

    def __init__(self) -> None:
        self._entries: Dict[str, DispatchEntry] = {}
        self._frozen = False

    def register(self, entry: DispatchEntry) -> None:
        if self._frozen:
            raise RuntimeError(
                f"Dispatch registry is frozen. Register ops before lowering starts. op={entry.onnx_op}"
            )
        if entry.onnx_op in self._entries:
            raise ValueError(f"Duplicate dispatch entry for ONNX op: {entry.onnx_op}")
        self._entries[entry.onnx_op] = entry

    def freeze(self) -> "DispatchRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, onnx_op: str) -> Optional[DispatchEntry]:
        return self._entries.get(str(onnx_op), None)

    def entries(self) -> Dict[str, DispatchEntry]:
        return dict(self._entries)

    def supported_ops(self) -> List[str]:
        return sorted(self._entries.keys())


def _validate_opset(node: Any, entry: DispatchEntry) -> None:
    opset = int(node.opset_version)
    if opset < int(entry.min_opset):
        raise NodeValidationError(
            reason_code="unsupported_opset_version",
            message=f"opset={opset} is smaller than min_opset={entry.min_opset}",
            node_name=node.name,
            node_op=node.op,
        )
    if entry.max_opset is not None and opset > int(entry.max_opset):
        raise NodeValidationError(
            reason_code="unsupported_opset_version",
            message=f"opset={opset} exceeds max_opset={entry.max_opset}",
            node_name=node.name,
            node_op=node.op,
        )


def _validate_counts(node: Any, spec: ValidationSpec) -> None:
    input_count = len(node.inputs)
    output_count = len(node.outputs)
    if spec.max_outputs is not None and output_count > int(spec.max_outputs):
        if spec.training_mode_outputs:
            raise NodeValidationError(
                reason_code="training_mode_outputs",
                message=(
                    f"output_count={output_count} exceeds max_outputs={spec.max_outputs}. "
                    "The model may be exported in training mode, please export it in inference mode."
                ),
                node_name=node.name,
                node_op=node.op,
            )
        raise NodeValidationError(
            reason_code="invalid_output_count",
            message=f"output_count={output_count} exceeds max_outputs={spec.max_outputs}",
            node_name=node.name,
            node_op=node.op,
        )
    if output_count < int(spec.min_outputs):
        raise NodeValidationError(
            reason_code="invalid_output_count",
            message=f"output_count={output_count} is smaller than min_outputs={spec.min_outputs}",
            node_name=node.name,
            node_op=node.op,
        )
    if input_count < int(spec.min_inputs):
        raise NodeValidationError(
            reason_code="invalid_input_count",
            message=f"input_count={input_count} is smaller than min_inputs={spec.min_inputs}",
            node_name=node.name,
            node_op=node.op,
        )
    if spec.max_inputs is not None and input_count > int(spec.max_inputs):
        raise NodeValidationError(
            reason_code="invalid_input_count",
            message=f"input_count={input_count} exceeds max_inputs={spec.max_inputs}",
            node_name=node.name,
            node_op=node.op,
        )


def _validate_attrs(node: Any, spec: ValidationSpec) -> None:
    for attr in spec.required_attrs:
        if attr not in node.attrs:
            raise NodeValidationError(
                reason_code="missing_required_attribute",
                message=f"required attribute '{attr}' is missing",
                node_name=node.name,
                node_op=node.op,
            )


def _require_input_shape(node: Any, ctx: Any, input_index: int) -> List[int]:
    tensor_name = node.inputs[input_index].name
    shape = ctx.get_tensor_shape(tensor_name)
    if shape is None:
        raise NodeValidationError(
            reason_code="unknown_input_shape",
            message=f"input[{input_index}] shape is unknown. tensor={tensor_name}",
            node_name=node.name,
            node_op=node.op,
        )
    return shape


def _validate_shape_constraints(node: Any, ctx: Any, spec: ValidationSpec) -> None:
    for input_index, allowed_ranks in spec.input_rank.items():
        if input_index >= len(node.inputs):
            continue
        shape = _require_input_shape(node, ctx, input_index)
        if len(shape) not in allowed_ranks:
            raise NodeValidationError(
                reason_code="unsupported_input_rank",
                message=(
                    f"input[{input_index}] rank={len(shape)} is not in supported ranks={allowed_ranks} "
                    f"for tensor={node.inputs[input_index].name}"
                ),
                node_name=node.name,
                node_op=node.op,
            )
    for input_index in spec.static_shape_inputs:
        if input_index >= len(node.inputs):
            continue
        shape = _require_input_shape(node, ctx, input_index)
        if any(int(d) < 0 for d in shape):
            raise NodeValidationError(
                reason_code="dynamic_input_shape",
                message=(
                    f"input[{input_index}] shape must be static. shape={shape} "
                    f"tensor={node.inputs[input_index].name}"
                ),
                node_name=node.name,
                node_op=node.op,
            )


def _validate_input_dtypes(node: Any, ctx: Any, spec: ValidationSpec) -> None:
    for input_index, allowed_dtypes in spec.input_dtypes.items():
        if input_index >= len(node.inputs):
            continue
        tensor_name = node.inputs[input_index].name
        dtype = ctx.get_tensor_dtype(tensor_name)
        if dtype is None or dtype not in allowed_dtypes:
            raise NodeValidationError(
                reason_code="unsupported_input_dtype",
                message=(
                    f"input[{input_index}] dtype={dtype} is not in supported dtypes={allowed_dtypes} "
                    f"for tensor={tensor_name}"
                ),
                node_name=node.name,
                node_op=node.op,
            )
        if dtype == "FLOAT16" and not ctx.create_ml_program:
            raise NodeValidationError(
                reason_code="unsupported_input_dtype",
                message=f"input[{input_index}] dtype=FLOAT16 requires the mlprogram dialect. tensor={tensor_name}",
                node_name=node.name,
                node_op=node.op,
            )


def _validate_const_inputs(node: Any, ctx: Any, spec: ValidationSpec) -> None:
    for input_index, input_label in spec.const_inputs.items():
        if input_index >= len(node.inputs):
            raise NodeValidationError(
                reason_code="invalid_input_count",
                message=f"{input_label} input index={input_index} is missing",
                node_name=node.name,
                node_op=node.op,
            )
        tensor_name = node.inputs[input_index].name
        if not ctx.is_initializer(tensor_name):
            raise NodeValidationError(
                reason_code="requires_constant_input",
                message=f"{input_label} of {node.op} must be a constant initializer. tensor={tensor_name}",
                node_name=node.name,
                node_op=node.op,
            )


def _validate_platform_exclusions(node: Any, ctx: Any) -> None:
    exclusion = find_platform_exclusion(node, ctx)
    if exclusion is not None:
        raise NodeValidationError(
            reason_code="platform_exclusion",
            message=exclusion.reason,
            node_name=node.name,
            node_op=node.op,
        )


# Dtypes both a weight blob and a named constant can carry.
_PARAM_DTYPES = ["FLOAT32", "FLOAT16"]


def _validate_batch_normalization(node: Any, ctx: Any) -> None:
    # TODO: rank-3 input could be lowered via {N,C,H} -> {N,C,H,1} and a squeeze back.
    spatial = int(node.attrs.get("spatial", 1))
    if spatial != 1:
        raise NodeValidationError(
            reason_code="unsupported_attribute_value",
            message=f"Non-spatial BatchNormalization is not supported. spatial={spatial}",
            node_name=node.name,
            node_op=node.op,
        )
    # Since opset 15 scale/B/mean/var have their own element type.
    for input_index, input_label in [(1, "scale"), (2, "B"), (3, "mean"), (4, "var")]:
        tensor_name = node.inputs[input_index].name
        dtype = ctx.get_tensor_dtype(tensor_name)
        if dtype not in _PARAM_DTYPES:
            raise NodeValidationError(
                reason_code="unsupported_input_dtype",
                message=(
                    f"{input_label} dtype={dtype} is not in supported dtypes={_PARAM_DTYPES} "
                    f"for tensor={tensor_name}"
                ),
                node_name=node.name,
                node_op=node.op,
            )


def _make_activation_builder(program_op_type: str, non_linearity: str) -> Callable[[Any, Any], None]:
    def _builder(node: Any, ctx: Any) -> None:
        build_activation_op(node, ctx, program_op_type, non_linearity)

    return _builder


_FLOAT_DTYPES = ["FLOAT32", "FLOAT16"]


def _activation_entry(onnx_op: str, program_op_type: str, non_linearity: str) -> DispatchEntry:
    return DispatchEntry(
        onnx_op=onnx_op,
        program_ops=[program_op_type],
        layer_types=["activation"],
        builder=_make_activation_builder(program_op_type, non_linearity),
        validation=ValidationSpec(
            min_inputs=1,
            max_inputs=1,
            min_outputs=1,
            max_outputs=1,
            input_dtypes={0: _FLOAT_DTYPES},
        ),
    )


_DEFAULT_DISPATCH_ENTRIES: List[DispatchEntry] = [
    DispatchEntry(
        onnx_op="BatchNormalization",
        program_ops=["batch_norm"],
        layer_types=["batchnorm"],
        builder=build_batch_normalization_op,
        validation=ValidationSpec(
            min_inputs=5,
            max_inputs=5,
            min_outputs=1,
            max_outputs=1,
            training_mode_outputs=True,
            input_rank={0: [4]},
            input_dtypes={0: _FLOAT_DTYPES},
            const_inputs={
                1: "scale",
                2: "B",
                3: "mean",
                4: "var",
            },
        ),
        extra_validator=_validate_batch_normalization,
        initializers_to_skip=batch_normalization_initializers_to_skip,
        # opset 6 and earlier carry is_test/spatial semantics that cannot be expressed.
        min_opset=7,
    ),
    DispatchEntry(
        onnx_op="Shape",
        program_ops=["const", "slice_by_size"],
        layer_types=["load_constant", "slice_static"],
        builder=build_shape_op,
        validation=ValidationSpec(
            min_inputs=1,
            max_inputs=1,
            min_outputs=1,
            max_outputs=1,
            static_shape_inputs=[0],
        ),
    ),
    _activation_entry("Relu", "relu", "RELU"),
    _activation_entry("Sigmoid", "sigmoid", "SIGMOID"),
    _activation_entry("Tanh", "tanh", "TANH"),
    DispatchEntry(
        onnx_op="Identity",
        program_ops=["identity"],
        layer_types=["activation"],
        builder=build_identity_op,
        validation=ValidationSpec(
            min_inputs=1,
            max_inputs=1,
            min_outputs=1,
            max_outputs=1,
            input_dtypes={0: _FLOAT_DTYPES},
        ),
    ),
]


def build_dispatch_registry(entries: List[DispatchEntry]) -> DispatchRegistry:
    registry = DispatchRegistry()
    for entry in entries:
        registry.register(entry)
    return registry.freeze()


_DISPATCH_REGISTRY = build_dispatch_registry(_DEFAULT_DISPATCH_ENTRIES)


def get_default_registry() -> DispatchRegistry:
    return _DISPATCH_REGISTRY


def get_dispatch_registry() -> Dict[str, DispatchEntry]:
    return _DISPATCH_REGISTRY.entries()


def get_dispatch_entry(onnx_op: str) -> Optional[DispatchEntry]:
    return _DISPATCH_REGISTRY.lookup(onnx_op)


def get_supported_onnx_ops() -> List[str]:
    return _DISPATCH_REGISTRY.supported_ops()


def resolve_node_dispatch(
    node: Any,
    ctx: Any,
    registry: Optional[DispatchRegistry] = None,
) -> DispatchEntry:
    registry = registry if registry is not None else _DISPATCH_REGISTRY
    entry = registry.lookup(node.op)
    if entry is None:
        raise NodeValidationError(
            reason_code="unsupported_onnx_op",
            message=f"ONNX op is not supported by the target: {node.op}",
            node_name=node.name,
            node_op=node.op,
        )
    if entry.builder is None:
        raise NodeValidationError(
            reason_code="builder_not_implemented",
            message=f"ONNX op is registered without a builder: {node.op}",
            node_name=node.name,
            node_op=node.op,
        )
    _validate_opset(node, entry)
    _validate_counts(node, entry.validation)
    _validate_attrs(node, entry.validation)
    _validate_shape_constraints(node, ctx, entry.validation)
    _validate_input_dtypes(node, ctx, entry.validation)
    if entry.extra_validator is not None:
        entry.extra_validator(node, ctx)
    _validate_const_inputs(node, ctx, entry.validation)
    _validate_platform_exclusions(node, ctx)
    return entry


def check_node_support(
    node: Any,
    ctx: Any,
    registry: Optional[DispatchRegistry] = None,
) -> SupportResult:
    try:
        resolve_node_dispatch(node, ctx, registry=registry)
    except NodeValidationError as ve:
        verbose(
            f"{Color.MAGENTA}onnx_op_type{Color.RESET}: {ve.node_op} "
            f"{Color.MAGENTA}onnx_op_name{Color.RESET}: {ve.node_name} "
            f"is not supported. reason_code={ve.reason_code} message={ve.message}"
        )
        return SupportResult(
            supported=False,
            node_name=node.name,
            node_op=node.op,
            reason_code=ve.reason_code,
            message=ve.message,
        )
    return SupportResult(
        supported=True,
        node_name=node.name,
        node_op=node.op,
    )
