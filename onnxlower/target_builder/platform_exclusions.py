from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass(frozen=True)
class PlatformExclusion:
    onnx_op: str
    reason: str
    condition: Callable[[Any, Any], bool]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "onnx_op": self.onnx_op,
            "reason": self.reason,
        }


def _float16_input_on_old_ios_x86_64_simulator(node: Any, ctx: Any) -> bool:
    env = ctx.target_environment
    if not env.is_ios_x86_64_simulator:
        return False
    if not (0 < int(env.runtime_version) < 7):
        return False
    return ctx.get_tensor_dtype(node.inputs[0].name) == "FLOAT16"


_PLATFORM_EXCLUSIONS: List[PlatformExclusion] = [
    PlatformExclusion(
        onnx_op="BatchNormalization",
        reason=(
            "float16 input is not supported on the iOS x86_64 simulator below runtime version 7 "
            "because the runtime produces invalid output."
        ),
        condition=_float16_input_on_old_ios_x86_64_simulator,
    ),
]


def get_platform_exclusions() -> List[PlatformExclusion]:
    return list(_PLATFORM_EXCLUSIONS)


def find_platform_exclusion(node: Any, ctx: Any) -> Optional[PlatformExclusion]:
    for exclusion in _PLATFORM_EXCLUSIONS:
        if exclusion.onnx_op != node.op:
            continue
        if exclusion.condition(node, ctx):
            return exclusion
    return None
