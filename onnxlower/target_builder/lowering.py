from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import onnx

from onnxlower.graph import GraphView
from onnxlower.target_builder.config import LoweringOptions, resolve_lowering_options
from onnxlower.target_builder.dispatcher import dispatch_node
from onnxlower.target_builder.ir import ModelIR
from onnxlower.target_builder.model_builder import ModelBuilder
from onnxlower.target_builder.op_registry import (
    DispatchRegistry,
    NodeValidationError,
    check_node_support,
    get_default_registry,
)
from onnxlower.target_builder.platform_exclusions import get_platform_exclusions
from onnxlower.utils.logging import *


@dataclass
class LoweringResult:
    model_ir: ModelIR
    node_reports: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def unsupported_nodes(self) -> List[Dict[str, Any]]:
        return [r for r in self.node_reports if r["supported"] is False]

    @property
    def lowered_nodes(self) -> List[Dict[str, Any]]:
        return [
            r for r in self.node_reports
            if r["supported"] is True and r["reason_code"] != "handled_inline"
        ]


def _handled_inline_report(node: Any) -> Dict[str, Any]:
    return {
        "node_name": node.name,
        "onnx_op": node.op,
        "supported": True,
        "reason_code": "handled_inline",
        "message": "Constant node is folded into the initializer store.",
    }


def _create_session(
    onnx_graph: onnx.ModelProto,
    output_file_name: str,
    options: LoweringOptions,
) -> ModelBuilder:
    graph = GraphView(onnx_graph)
    model_ir = ModelIR(
        name=output_file_name,
        dialect=options.target_dialect,
    )
    return ModelBuilder(
        model_ir=model_ir,
        graph=graph,
        options=options,
    )


def lower_onnx_model(
    onnx_graph: onnx.ModelProto,
    output_file_name: str = "model",
    strict: bool = False,
    registry: Optional[DispatchRegistry] = None,
    **kwargs: Any,
) -> LoweringResult:
    options = resolve_lowering_options(kwargs)
    ctx = _create_session(onnx_graph, output_file_name, options)

    node_reports: List[Dict[str, Any]] = []
    for node in ctx.graph.nodes():
        if ctx.graph.is_inline_constant(node):
            node_reports.append(_handled_inline_report(node))
            continue
        try:
            entry = dispatch_node(node, ctx, registry=registry)
        except NodeValidationError as ve:
            if strict:
                raise
            verbose(
                f"{Color.MAGENTA}onnx_op_type{Color.RESET}: {ve.node_op} "
                f"{Color.MAGENTA}onnx_op_name{Color.RESET}: {ve.node_name} "
                f"is left to the fallback device. reason_code={ve.reason_code} message={ve.message}"
            )
            issue = ve.to_dict()
            issue["supported"] = False
            node_reports.append(issue)
            # Values of a node left behind arrive from outside this model.
            for output in node.outputs:
                ctx.add_boundary_input(output.name)
            continue
        node_reports.append(
            {
                "node_name": node.name,
                "onnx_op": node.op,
                "supported": True,
                "reason_code": None,
                "message": None,
                "target_ops": list(
                    entry.program_ops if ctx.create_ml_program else entry.layer_types
                ),
            }
        )

    model_ir = ctx.finalize()
    lowered = len([r for r in node_reports if r["supported"] is True])
    info(
        f"{Color.GREEN}Lowering complete.{Color.RESET} "
        f"dialect={options.target_dialect.value} "
        f"lowered_nodes={lowered}/{len(node_reports)} "
        f"target_units={len(model_ir.units())} "
        f"skipped_initializers={len(model_ir.initializers_to_skip)}"
    )
    left_behind = len(node_reports) - lowered
    if left_behind > 0:
        warn(
            f"{left_behind} node(s) are left to the fallback device. "
            f"boundary_inputs={[n for n in model_ir.inputs if n not in ctx.graph.graph_input_names]}"
        )
    return LoweringResult(
        model_ir=model_ir,
        node_reports=node_reports,
    )


def build_support_report(
    onnx_graph: onnx.ModelProto,
    output_file_name: str = "model",
    registry: Optional[DispatchRegistry] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Runs only the support checks over every node. Nothing is emitted."""
    options = resolve_lowering_options(kwargs)
    ctx = _create_session(onnx_graph, output_file_name, options)
    registry = registry if registry is not None else get_default_registry()

    node_reports: List[Dict[str, Any]] = []
    unsupported_nodes: List[Dict[str, Any]] = []
    graph_unique_ops: set = set()
    for node in ctx.graph.nodes():
        graph_unique_ops.add(node.op)
        if ctx.graph.is_inline_constant(node):
            node_reports.append(_handled_inline_report(node))
            continue
        try:
            result = check_node_support(node, ctx, registry=registry)
            issue = result.to_dict()
        except Exception as ex:
            issue = {
                "node_name": node.name,
                "onnx_op": node.op,
                "supported": False,
                "reason_code": "validation_exception",
                "message": str(ex),
            }
        node_reports.append(issue)
        if issue["supported"] is False:
            unsupported_nodes.append(issue)

    reason_counts: Dict[str, int] = {}
    for issue in unsupported_nodes:
        reason = str(issue.get("reason_code", "unknown"))
        reason_counts[reason] = int(reason_counts.get(reason, 0) + 1)

    total_nodes = len(node_reports)
    supported_nodes = len([r for r in node_reports if r["supported"] is True])
    coverage = float(supported_nodes / total_nodes) if total_nodes > 0 else 1.0
    report: Dict[str, Any] = {
        "schema_version": 1,
        "model_name": output_file_name,
        "target_dialect": options.target_dialect.value,
        "supported_onnx_ops_registry": registry.supported_ops(),
        "graph_ops": sorted(graph_unique_ops),
        "graph_supported_ops": sorted(
            list({r["onnx_op"] for r in node_reports if r["supported"] is True})
        ),
        "graph_unsupported_ops": sorted(
            list({r["onnx_op"] for r in node_reports if r["supported"] is False})
        ),
        "graph_node_reports": node_reports,
        "unsupported_nodes": unsupported_nodes,
        "unsupported_reason_counts": reason_counts,
        "graph_summary": {
            "total_nodes": int(total_nodes),
            "supported_nodes": int(supported_nodes),
            "unsupported_nodes": int(total_nodes - supported_nodes),
            "coverage_ratio": float(coverage),
        },
        "platform_exclusions": [e.to_dict() for e in get_platform_exclusions()],
    }
    return report


def write_support_report(
    *,
    report: Dict[str, Any],
    output_report_path: str,
) -> str:
    os.makedirs(os.path.dirname(output_report_path) or ".", exist_ok=True)
    with open(output_report_path, "w", encoding="utf-8") as f:
        json.dump(report, f, ensure_ascii=False, indent=2)
    return output_report_path
