from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

import numpy as np


class TargetDialect(Enum):
    NEURAL_NETWORK = "neuralnetwork"
    ML_PROGRAM = "mlprogram"

    @classmethod
    def parse(cls, value: Union[str, "TargetDialect"]) -> "TargetDialect":
        if isinstance(value, TargetDialect):
            return value
        normalized = str(value).strip().lower().replace("_", "")
        for dialect in cls:
            if dialect.value == normalized:
                return dialect
        raise ValueError(
            f"Unknown target dialect: {value}. "
            f"Available: {', '.join(d.value for d in cls)}"
        )


@dataclass
class WeightBlobIR:
    float_value: List[float] = field(default_factory=list)
    float16_value: bytes = b""

    def to_array(self) -> np.ndarray:
        if len(self.float16_value) > 0:
            return np.frombuffer(self.float16_value, dtype=np.float16)
        return np.asarray(self.float_value, dtype=np.float32)


@dataclass
class ConstantIR:
    name: str
    dtype: str
    shape: List[int]
    data: np.ndarray


@dataclass
class LayerIR:
    name: str
    layer_type: str
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    params: Dict[str, Any] = field(default_factory=dict)
    weights: Dict[str, WeightBlobIR] = field(default_factory=dict)


@dataclass
class OperationOutputIR:
    name: str
    dtype: str
    shape: Optional[List[int]] = None


@dataclass
class OperationIR:
    name: str
    op_type: str
    inputs: Dict[str, str] = field(default_factory=dict)
    outputs: List[OperationOutputIR] = field(default_factory=list)

    @property
    def output_names(self) -> List[str]:
        return [o.name for o in self.outputs]


TargetOpIR = Union[LayerIR, OperationIR]


@dataclass
class ModelIR:
    name: str
    dialect: TargetDialect = TargetDialect.ML_PROGRAM
    description: str = "onnxlower"
    layers: List[LayerIR] = field(default_factory=list)
    operations: List[OperationIR] = field(default_factory=list)
    constants: Dict[str, ConstantIR] = field(default_factory=dict)
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    initializers_to_skip: Set[str] = field(default_factory=set)

    def units(self) -> List[TargetOpIR]:
        if self.dialect == TargetDialect.ML_PROGRAM:
            return list(self.operations)
        return list(self.layers)


def target_op_input_names(op: TargetOpIR) -> List[str]:
    if isinstance(op, LayerIR):
        return list(op.inputs)
    return list(op.inputs.values())


def target_op_output_names(op: TargetOpIR) -> List[str]:
    if isinstance(op, LayerIR):
        return list(op.outputs)
    return op.output_names


def read_bound_param(model_ir: ModelIR, op: TargetOpIR, key: str) -> Any:
    """Returns the numeric value bound to ``key`` independent of its representation."""
    if isinstance(op, LayerIR):
        if key in op.weights:
            return op.weights[key].to_array()
        return op.params.get(key, None)
    value_name = op.inputs.get(key, None)
    if value_name is None or value_name not in model_ir.constants:
        return None
    return model_ir.constants[value_name].data
