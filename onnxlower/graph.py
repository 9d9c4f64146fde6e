from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import numpy as np
import onnx
from onnx import helper, numpy_helper

from onnxlower.utils.logging import *


# Constant's scalar / list forms. value_string(s) and sparse_value are not folded.
_CONSTANT_VALUE_ATTRS = {
    "value_float": (np.float32, onnx.TensorProto.FLOAT),
    "value_floats": (np.float32, onnx.TensorProto.FLOAT),
    "value_int": (np.int64, onnx.TensorProto.INT64),
    "value_ints": (np.int64, onnx.TensorProto.INT64),
}


@dataclass(frozen=True)
class ValueRef:
    name: str


def _decode_attribute(a: onnx.AttributeProto) -> Any:
    if a.type == onnx.AttributeProto.INT:
        return int(a.i)
    if a.type == onnx.AttributeProto.FLOAT:
        return float(a.f)
    if a.type == onnx.AttributeProto.INTS:
        return [int(v) for v in a.ints]
    if a.type == onnx.AttributeProto.FLOATS:
        return [float(v) for v in a.floats]
    if a.type == onnx.AttributeProto.STRING:
        return a.s.decode("utf-8")
    if a.type == onnx.AttributeProto.TENSOR:
        return np.asarray(numpy_helper.to_array(a.t))
    return None


class NodeView:
    """Read-only snapshot of one ONNX node.

    Optional inputs/outputs left empty by the exporter are dropped, so
    ``len(node.outputs)`` is the number of values the node really produces.
    """

    def __init__(
        self,
        n: onnx.NodeProto,
        opset_version: int,
    ):
        self.name = n.name if n.name else n.op_type
        self.op = n.op_type
        self.domain = n.domain
        self.opset_version = int(opset_version)
        attrs: Dict[str, Any] = {}
        for a in n.attribute:
            value = _decode_attribute(a)
            if value is not None:
                attrs[a.name] = value
        self.attrs = attrs
        self.inputs = [ValueRef(name=i) for i in n.input if i != ""]
        self.outputs = [ValueRef(name=o) for o in n.output if o != ""]

    def get_attribute(self, name: str, default: Any = None) -> Any:
        return self.attrs.get(name, default)

    def __repr__(self) -> str:
        return f"NodeView(op={self.op}, name={self.name})"


def _infer_shapes(onnx_graph: onnx.ModelProto) -> onnx.ModelProto:
    try:
        return onnx.shape_inference.infer_shapes(onnx_graph)
    except Exception as ex:
        # Missing value_info only makes more nodes ineligible.
        debug(f"ONNX shape inference failed, continuing with declared shapes. error={ex}")
        return onnx_graph


class GraphView:
    """Shape/type query and initializer store over an ``onnx.ModelProto``.

    Shapes are reported as lists with ``-1`` for unknown dims, or ``None``
    when not even the rank is known.
    """

    def __init__(
        self,
        onnx_graph: onnx.ModelProto,
        infer_shapes: bool = True,
    ):
        if infer_shapes:
            onnx_graph = _infer_shapes(onnx_graph)
        self.model = onnx_graph
        self.opset_versions: Dict[str, int] = {}
        for opset in onnx_graph.opset_import:
            domain = "" if opset.domain in ["", "ai.onnx"] else str(opset.domain)
            self.opset_versions[domain] = int(opset.version)

        self._shape_map: Dict[str, Optional[List[int]]] = {}
        self._elem_type_map: Dict[str, int] = {}
        self._initializers: Dict[str, np.ndarray] = {}
        self._fill_tensor_info()

        self.initializer_names = set(self._initializers.keys())
        self.graph_input_names = [str(vi.name) for vi in onnx_graph.graph.input]
        self.graph_output_names = [str(vi.name) for vi in onnx_graph.graph.output]

    def _fill_tensor_info(self) -> None:
        graph = self.model.graph

        def _fill_value_info(value_info):
            if not value_info.type.HasField("tensor_type"):
                return
            name = value_info.name
            tensor_type = value_info.type.tensor_type
            if tensor_type.elem_type != onnx.TensorProto.UNDEFINED:
                self._elem_type_map[name] = int(tensor_type.elem_type)
            if not tensor_type.HasField("shape"):
                self._shape_map[name] = None
                return
            dims: List[int] = []
            for d in tensor_type.shape.dim:
                if d.HasField("dim_value") and d.dim_value >= 0:
                    dims.append(int(d.dim_value))
                else:
                    dims.append(-1)
            self._shape_map[name] = dims

        for vi in graph.input:
            _fill_value_info(vi)
        for vi in graph.value_info:
            _fill_value_info(vi)
        for vi in graph.output:
            _fill_value_info(vi)

        for ini in graph.initializer:
            self._register_constant(ini.name, numpy_helper.to_array(ini), int(ini.data_type))

        for node in graph.node:
            if node.op_type != "Constant" or len(node.output) == 0:
                continue
            for attr in node.attribute:
                if attr.name == "value":
                    self._register_constant(
                        node.output[0],
                        numpy_helper.to_array(attr.t),
                        int(attr.t.data_type),
                    )
                    break
                if attr.name in _CONSTANT_VALUE_ATTRS:
                    np_dtype, elem_type = _CONSTANT_VALUE_ATTRS[attr.name]
                    self._register_constant(
                        node.output[0],
                        np.asarray(helper.get_attribute_value(attr), dtype=np_dtype),
                        elem_type,
                    )
                    break

    def _register_constant(self, name: str, array: Any, elem_type: int) -> None:
        arr = np.asarray(array)
        self._initializers[name] = arr
        self._shape_map[name] = [int(v) for v in arr.shape]
        self._elem_type_map[name] = elem_type

    def get_shape(self, name: str) -> Optional[List[int]]:
        shape = self._shape_map.get(name, None)
        if shape is None:
            return None
        return list(shape)

    def get_element_type(self, name: str) -> Optional[int]:
        return self._elem_type_map.get(name, None)

    def lookup_initializer(self, name: str) -> Optional[np.ndarray]:
        return self._initializers.get(name, None)

    def get_opset_version(self, domain: str = "") -> int:
        domain = "" if domain in ["", "ai.onnx"] else str(domain)
        return int(self.opset_versions.get(domain, 1))

    def is_inline_constant(self, node: NodeView) -> bool:
        return (
            node.op == "Constant"
            and len(node.outputs) > 0
            and node.outputs[0].name in self._initializers
        )

    def nodes(self) -> Iterator[NodeView]:
        for node in self.model.graph.node:
            yield NodeView(node, opset_version=self.get_opset_version(node.domain))
