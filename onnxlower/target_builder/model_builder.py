from __future__ import annotations

from typing import Any, Dict, FrozenSet, List, Optional, Set

import numpy as np

from onnxlower.graph import GraphView
from onnxlower.target_builder.config import LoweringOptions, TargetEnvironment
from onnxlower.target_builder.ir import (
    ConstantIR,
    LayerIR,
    ModelIR,
    OperationIR,
    OperationOutputIR,
    TargetOpIR,
    target_op_input_names,
    target_op_output_names,
)
from onnxlower.target_builder.weight_builder import create_weight_blob
from onnxlower.utils.enums import ONNX_DTYPES_TO_TARGET_DTYPES, target_dtype_from_numpy
from onnxlower.utils.logging import *


class ModelConstructionError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        node_name: str = "",
        node_op: str = "",
    ) -> None:
        super().__init__(message)
        self.node_name = str(node_name)
        self.node_op = str(node_op)
        self.message = str(message)


class ModelBuilder:
    """Emission context of one lowering session.

    Strategies only talk to the uniform ``create_target_op`` / ``bind_*`` API.
    Whether that turns into fixed-function layers or program operations is
    decided here, once per target op, from ``options.target_dialect``.
    """

    def __init__(
        self,
        model_ir: ModelIR,
        graph: GraphView,
        options: LoweringOptions,
    ):
        if model_ir.dialect != options.target_dialect:
            raise ValueError(
                f"ModelIR dialect={model_ir.dialect.value} does not match "
                f"target_dialect={options.target_dialect.value}"
            )
        self.model_ir = model_ir
        self.graph = graph
        self.options = options
        self._initializers_to_skip: Set[str] = set()
        self._boundary_inputs: List[str] = []
        self._finalized = False

        self._used_names: Set[str] = set()
        self._serial: Dict[str, int] = {}
        self._used_names.update(graph.graph_input_names)
        self._used_names.update(graph.graph_output_names)
        self._used_names.update(graph.initializer_names)
        for node in graph.model.graph.node:
            self._used_names.update(str(v) for v in node.input if v != "")
            self._used_names.update(str(v) for v in node.output if v != "")

        self._available_values: Set[str] = {
            name for name in graph.graph_input_names
            if name not in graph.initializer_names
        }

    @property
    def create_ml_program(self) -> bool:
        return self.options.create_ml_program

    @property
    def int64_supported(self) -> bool:
        return self.options.int64_supported

    @property
    def target_environment(self) -> TargetEnvironment:
        return self.options.target_environment

    @property
    def initializers_to_skip(self) -> FrozenSet[str]:
        return frozenset(self._initializers_to_skip)

    @property
    def finalized(self) -> bool:
        return self._finalized

    # Shape/type and initializer queries

    def get_tensor_shape(self, name: str) -> Optional[List[int]]:
        return self.graph.get_shape(name)

    def get_tensor_dtype(self, name: str) -> Optional[str]:
        elem_type = self.graph.get_element_type(name)
        if elem_type is None:
            return None
        return ONNX_DTYPES_TO_TARGET_DTYPES.get(elem_type, None)

    def get_constant_array(self, name: str) -> Optional[np.ndarray]:
        return self.graph.lookup_initializer(name)

    def is_initializer(self, name: str) -> bool:
        return self.graph.lookup_initializer(name) is not None

    # Bookkeeping

    def _ensure_mutable(self) -> None:
        if self._finalized:
            raise ModelConstructionError(
                f"Model builder is finalized and can no longer be modified. model={self.model_ir.name}"
            )

    def unique_name(self, base: str) -> str:
        if base == "":
            raise ValueError("Name base must not be empty in lowering.")
        name = base
        while name in self._used_names:
            self._serial[base] = self._serial.get(base, 0) + 1
            name = f"{base}_{self._serial[base]}"
        self._used_names.add(name)
        return name

    def add_initializer_to_skip(self, name: str) -> None:
        self._ensure_mutable()
        self._initializers_to_skip.add(name)

    def add_boundary_input(self, name: str) -> None:
        """Marks a value produced outside this model (e.g. by a fallback device)."""
        self._ensure_mutable()
        if name in self._available_values:
            return
        self._available_values.add(name)
        self._boundary_inputs.append(name)

    # Constants

    def _register_constant(self, name: str, data: np.ndarray) -> str:
        data = np.asarray(data)
        self.model_ir.constants[name] = ConstantIR(
            name=name,
            dtype=target_dtype_from_numpy(data.dtype),
            shape=[int(v) for v in data.shape],
            data=data,
        )
        self._available_values.add(name)
        return name

    def add_constant(self, op_type: str, base_name: str, data: Any) -> str:
        self._ensure_mutable()
        name = self.unique_name(f"{op_type}_{base_name}")
        return self._register_constant(name, np.asarray(data))

    def add_scalar_constant(self, op_type: str, base_name: str, value: Any, dtype: Any) -> str:
        return self.add_constant(op_type, base_name, np.asarray(value, dtype=dtype))

    def materialize_constant(self, node: Any, base_name: str, data: Any) -> str:
        """Makes ``data`` available as a value and returns the value name.

        Program: a named constant operand. Layer: a ``load_constant`` layer.
        """
        self._ensure_mutable()
        data = np.asarray(data)
        if self.create_ml_program:
            return self.add_constant("const", base_name, data)
        output_name = self.unique_name(base_name)
        self._append_load_constant_layer(node.name, output_name, data)
        return output_name

    def _append_load_constant_layer(self, base_layer_name: str, output_name: str, data: np.ndarray) -> None:
        layer = LayerIR(
            name=self.unique_name(f"{base_layer_name}_load_constant"),
            layer_type="load_constant",
            outputs=[output_name],
            params={"shape": [int(v) for v in data.shape]},
            weights={"data": create_weight_blob(data)},
        )
        self.add_target_op(layer)

    def _materialize_initializer(self, name: str) -> None:
        data = self.get_constant_array(name)
        if name in self._initializers_to_skip:
            debug(
                f"Initializer is consumed directly by a lowered op and also bound as a plain value. "
                f"It is materialized once more. initializer={name}"
            )
        if self.create_ml_program:
            self._register_constant(name, data)
        else:
            self._append_load_constant_layer(name, name, data)

    # Uniform emission API

    def create_target_op(self, node: Any, program_op_type: str, layer_type: str) -> TargetOpIR:
        self._ensure_mutable()
        if self.create_ml_program:
            return OperationIR(
                name=self.unique_name(f"{node.name}_{program_op_type}"),
                op_type=program_op_type,
            )
        return LayerIR(
            name=self.unique_name(f"{node.name}_{layer_type}"),
            layer_type=layer_type,
        )

    def bind_input(self, op: TargetOpIR, key: str, value_name: str) -> None:
        if (
            value_name not in self._available_values
            and self.is_initializer(value_name)
        ):
            self._materialize_initializer(value_name)
        if isinstance(op, LayerIR):
            op.inputs.append(value_name)
        else:
            op.inputs[key] = value_name

    def bind_tensor_param(self, op: TargetOpIR, key: str, data: Any, base_name: str) -> None:
        if isinstance(op, LayerIR):
            op.weights[key] = create_weight_blob(data)
            return
        op.inputs[key] = self.add_constant(op.op_type, base_name, data)

    def bind_scalar_param(self, op: TargetOpIR, key: str, value: float, like: str) -> None:
        if isinstance(op, LayerIR):
            op.params[key] = float(value)
            return
        # Scalar operands follow the element type of the activation they act on.
        dtype = np.float16 if self.get_tensor_dtype(like) == "FLOAT16" else np.float32
        op.inputs[key] = self.add_scalar_constant(op.op_type, key, value, dtype)

    def bind_ints_param(self, op: TargetOpIR, key: str, values: List[int]) -> None:
        if isinstance(op, LayerIR):
            op.params[key] = [int(v) for v in values]
            return
        op.inputs[key] = self.add_constant(
            op.op_type,
            key,
            np.asarray([int(v) for v in values], dtype=np.int32),
        )

    def set_layer_params(self, op: TargetOpIR, **params: Any) -> None:
        if isinstance(op, LayerIR):
            op.params.update(params)

    def bind_output(
        self,
        op: TargetOpIR,
        value_name: str,
        dtype: Optional[str] = None,
        shape: Optional[List[int]] = None,
    ) -> None:
        if isinstance(op, LayerIR):
            op.outputs.append(value_name)
            return
        op.outputs.append(
            OperationOutputIR(
                name=value_name,
                dtype=dtype if dtype is not None else (self.get_tensor_dtype(value_name) or "FLOAT32"),
                shape=shape if shape is not None else self.get_tensor_shape(value_name),
            )
        )

    def add_target_op(self, op: TargetOpIR) -> None:
        self._ensure_mutable()
        if isinstance(op, LayerIR) == self.create_ml_program:
            raise ModelConstructionError(
                f"{type(op).__name__} cannot be added to a {self.options.target_dialect.value} model. op={op.name}"
            )
        for input_name in target_op_input_names(op):
            if input_name not in self._available_values:
                raise ModelConstructionError(
                    f"Dangling input reference: value={input_name} is neither a graph input, "
                    f"a materialized constant nor a prior output. op={op.name}"
                )
        if isinstance(op, LayerIR):
            self.model_ir.layers.append(op)
        else:
            self.model_ir.operations.append(op)
        self._available_values.update(target_op_output_names(op))

    def finalize(self) -> ModelIR:
        if self._finalized:
            return self.model_ir
        initializer_names = self.graph.initializer_names
        self.model_ir.inputs = [
            name for name in self.graph.graph_input_names
            if name not in initializer_names and name not in self._initializers_to_skip
        ]
        self.model_ir.inputs.extend(
            name for name in self._boundary_inputs if name not in self.model_ir.inputs
        )
        self.model_ir.outputs = list(self.graph.graph_output_names)
        self.model_ir.initializers_to_skip = set(self._initializers_to_skip)
        self._finalized = True
        return self.model_ir
