import json

import numpy as np
import onnx
from onnx import TensorProto, helper, numpy_helper

from onnxlower.target_builder.lowering import build_support_report, write_support_report


def _make_add_model() -> onnx.ModelProto:
    x = helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 3])
    y = helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, 3])
    z = helper.make_tensor_value_info("z", TensorProto.FLOAT, [1, 3])
    node = helper.make_node("Add", ["x", "y"], ["z"], name="AddNode")
    graph = helper.make_graph([node], "add_graph", [x, y], [z])
    return helper.make_model(graph, opset_imports=[helper.make_operatorsetid("", 13)])


def _make_mixed_model() -> onnx.ModelProto:
    x = helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 2, 4, 4])
    mean = helper.make_tensor_value_info("mean", TensorProto.FLOAT, [2])
    y = helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, 2, 4, 4])
    s = helper.make_tensor_value_info("s", TensorProto.INT64, [4])
    initializers = [
        numpy_helper.from_array(np.ones([2], dtype=np.float32), name="scale"),
        numpy_helper.from_array(np.zeros([2], dtype=np.float32), name="B"),
        numpy_helper.from_array(np.ones([2], dtype=np.float32), name="var"),
    ]
    nodes = [
        helper.make_node("Relu", ["x"], ["r"], name="ReluNode"),
        helper.make_node(
            "BatchNormalization",
            ["r", "scale", "B", "mean", "var"],
            ["y"],
            name="BatchNormNode",
        ),
        helper.make_node("Shape", ["x"], ["s"], name="ShapeNode"),
        helper.make_node("Softmax", ["x"], ["sm"], name="SoftmaxNode", axis=1),
    ]
    graph = helper.make_graph(
        nodes,
        "mixed_graph",
        [x, mean],
        [y, s],
        initializer=initializers,
    )
    return helper.make_model(graph, opset_imports=[helper.make_operatorsetid("", 15)])


def test_support_report_keys_compatibility_snapshot() -> None:
    report = build_support_report(
        onnx_graph=_make_add_model(),
        output_file_name="add_support_snapshot",
    )
    assert sorted(report.keys()) == [
        "graph_node_reports",
        "graph_ops",
        "graph_summary",
        "graph_supported_ops",
        "graph_unsupported_ops",
        "model_name",
        "platform_exclusions",
        "schema_version",
        "supported_onnx_ops_registry",
        "target_dialect",
        "unsupported_nodes",
        "unsupported_reason_counts",
    ]
    assert report["schema_version"] == 1
    assert report["model_name"] == "add_support_snapshot"
    assert report["graph_ops"] == ["Add"]
    assert report["graph_unsupported_ops"] == ["Add"]
    assert report["unsupported_reason_counts"] == {"unsupported_onnx_op": 1}
    assert report["graph_summary"] == {
        "total_nodes": 1,
        "supported_nodes": 0,
        "unsupported_nodes": 1,
        "coverage_ratio": 0.0,
    }
    assert "BatchNormalization" in report["supported_onnx_ops_registry"]
    assert report["platform_exclusions"][0]["onnx_op"] == "BatchNormalization"


def test_support_report_reason_code_snapshot() -> None:
    report = build_support_report(_make_mixed_model(), target_dialect="neuralnetwork")
    assert report["target_dialect"] == "neuralnetwork"
    assert report["graph_ops"] == ["BatchNormalization", "Relu", "Shape", "Softmax"]
    assert report["graph_supported_ops"] == ["Relu", "Shape"]
    assert report["graph_unsupported_ops"] == ["BatchNormalization", "Softmax"]
    assert report["unsupported_reason_counts"] == {
        "requires_constant_input": 1,
        "unsupported_onnx_op": 1,
    }
    bn_issue = next(i for i in report["unsupported_nodes"] if i["onnx_op"] == "BatchNormalization")
    assert bn_issue["node_name"] == "BatchNormNode"
    assert "mean" in bn_issue["message"]
    assert report["graph_summary"]["total_nodes"] == 4
    assert report["graph_summary"]["supported_nodes"] == 2
    assert report["graph_summary"]["coverage_ratio"] == 0.5


def test_support_report_emits_nothing() -> None:
    model = _make_mixed_model()
    first = build_support_report(model)
    second = build_support_report(model)
    assert first == second


def test_write_support_report(tmp_path) -> None:
    report = build_support_report(_make_add_model(), output_file_name="add")
    output_report_path = str(tmp_path / "reports" / "add_support_report.json")
    written = write_support_report(report=report, output_report_path=output_report_path)
    assert written == output_report_path
    with open(output_report_path, "r", encoding="utf-8") as f:
        loaded = json.load(f)
    assert loaded == report
