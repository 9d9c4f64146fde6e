import onnx
import pytest
from onnx import TensorProto, helper

from onnxlower.graph import GraphView
from onnxlower.target_builder.config import resolve_lowering_options
from onnxlower.target_builder.ir import ModelIR
from onnxlower.target_builder.model_builder import ModelBuilder
from onnxlower.target_builder.op_registry import (
    DispatchEntry,
    DispatchRegistry,
    ValidationSpec,
    build_dispatch_registry,
    check_node_support,
    get_default_registry,
    get_dispatch_entry,
    get_supported_onnx_ops,
)


def _make_relu_model(opset: int = 13) -> onnx.ModelProto:
    x = helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 3])
    y = helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, 3])
    node = helper.make_node("Relu", ["x"], ["y"], name="ReluNode")
    graph = helper.make_graph([node], "relu_graph", [x], [y])
    return helper.make_model(graph, opset_imports=[helper.make_operatorsetid("", opset)])


def _make_ctx(model: onnx.ModelProto) -> ModelBuilder:
    options = resolve_lowering_options({"target_dialect": "mlprogram"})
    return ModelBuilder(
        model_ir=ModelIR(name="registry_test", dialect=options.target_dialect),
        graph=GraphView(model),
        options=options,
    )


def _noop_builder(node, ctx) -> None:
    return None


def test_default_registry_catalog() -> None:
    ops = get_supported_onnx_ops()
    assert ops == sorted(ops)
    for op in ["BatchNormalization", "Identity", "Relu", "Shape", "Sigmoid", "Tanh"]:
        assert op in ops
    assert get_default_registry().frozen is True


def test_default_registry_entries() -> None:
    entry = get_dispatch_entry("BatchNormalization")
    assert entry is not None
    assert entry.min_opset == 7
    assert entry.program_ops == ["batch_norm"]
    assert entry.layer_types == ["batchnorm"]
    assert get_dispatch_entry("Softmax") is None


def test_duplicate_register_is_rejected() -> None:
    registry = DispatchRegistry()
    registry.register(DispatchEntry(onnx_op="Relu", builder=_noop_builder))
    with pytest.raises(ValueError):
        registry.register(DispatchEntry(onnx_op="Relu", builder=_noop_builder))


def test_build_dispatch_registry_rejects_duplicates() -> None:
    with pytest.raises(ValueError):
        build_dispatch_registry(
            [
                DispatchEntry(onnx_op="Relu", builder=_noop_builder),
                DispatchEntry(onnx_op="Relu", builder=_noop_builder),
            ]
        )


def test_frozen_registry_rejects_register() -> None:
    registry = build_dispatch_registry([DispatchEntry(onnx_op="Relu", builder=_noop_builder)])
    with pytest.raises(RuntimeError):
        registry.register(DispatchEntry(onnx_op="Tanh", builder=_noop_builder))
    with pytest.raises(RuntimeError):
        get_default_registry().register(DispatchEntry(onnx_op="Softmax", builder=_noop_builder))


def test_unregistered_op_is_unsupported() -> None:
    ctx = _make_ctx(_make_relu_model())
    node = next(iter(ctx.graph.nodes()))
    registry = build_dispatch_registry([])
    result = check_node_support(node, ctx, registry=registry)
    assert result.supported is False
    assert result.reason_code == "unsupported_onnx_op"


def test_entry_without_builder_is_reported() -> None:
    ctx = _make_ctx(_make_relu_model())
    node = next(iter(ctx.graph.nodes()))
    registry = build_dispatch_registry([DispatchEntry(onnx_op="Relu")])
    result = check_node_support(node, ctx, registry=registry)
    assert result.supported is False
    assert result.reason_code == "builder_not_implemented"


def test_opset_range_is_enforced() -> None:
    ctx = _make_ctx(_make_relu_model(opset=14))
    node = next(iter(ctx.graph.nodes()))
    registry = build_dispatch_registry(
        [DispatchEntry(onnx_op="Relu", builder=_noop_builder, max_opset=13)]
    )
    result = check_node_support(node, ctx, registry=registry)
    assert result.supported is False
    assert result.reason_code == "unsupported_opset_version"
    assert "max_opset=13" in result.message


def test_required_attribute_is_enforced() -> None:
    ctx = _make_ctx(_make_relu_model())
    node = next(iter(ctx.graph.nodes()))
    registry = build_dispatch_registry(
        [
            DispatchEntry(
                onnx_op="Relu",
                builder=_noop_builder,
                validation=ValidationSpec(required_attrs=["alpha"]),
            )
        ]
    )
    result = check_node_support(node, ctx, registry=registry)
    assert result.reason_code == "missing_required_attribute"


def test_input_count_is_enforced() -> None:
    ctx = _make_ctx(_make_relu_model())
    node = next(iter(ctx.graph.nodes()))
    registry = build_dispatch_registry(
        [
            DispatchEntry(
                onnx_op="Relu",
                builder=_noop_builder,
                validation=ValidationSpec(min_inputs=2),
            )
        ]
    )
    result = check_node_support(node, ctx, registry=registry)
    assert result.reason_code == "invalid_input_count"


def test_support_result_to_dict() -> None:
    ctx = _make_ctx(_make_relu_model())
    node = next(iter(ctx.graph.nodes()))
    result = check_node_support(node, ctx)
    assert bool(result) is True
    assert result.to_dict() == {
        "node_name": "ReluNode",
        "onnx_op": "Relu",
        "supported": True,
        "reason_code": None,
        "message": None,
    }
