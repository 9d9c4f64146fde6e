from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict

from onnxlower.target_builder.ir import TargetDialect


_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_STRINGS:
        return True
    if normalized in _FALSE_STRINGS:
        return False
    raise ValueError(f"{key} must be a boolean. got={value}")


@dataclass(frozen=True)
class TargetEnvironment:
    """Where the lowered model is going to run.

    ``runtime_version`` 0 means unknown; version-gated exclusions never match it.
    """
    os_name: str = ""
    arch: str = ""
    runtime_version: int = 0

    @property
    def is_ios_x86_64_simulator(self) -> bool:
        return self.os_name == "ios" and self.arch == "x86_64"


@dataclass(frozen=True)
class LoweringOptions:
    target_dialect: TargetDialect = TargetDialect.ML_PROGRAM
    int64_supported: bool = True
    target_environment: TargetEnvironment = field(default_factory=TargetEnvironment)

    @property
    def create_ml_program(self) -> bool:
        return self.target_dialect == TargetDialect.ML_PROGRAM


def resolve_lowering_options(kwargs: Dict[str, Any]) -> LoweringOptions:
    target_dialect = kwargs.get(
        "target_dialect",
        os.environ.get("ONNXLOWER_TARGET_DIALECT", "mlprogram"),
    )
    int64_supported = kwargs.get(
        "int64_supported",
        os.environ.get("ONNXLOWER_INT64_SUPPORTED", "1"),
    )
    target_environment = kwargs.get("target_environment", None)
    if target_environment is None:
        target_os = kwargs.get(
            "target_os",
            os.environ.get("ONNXLOWER_TARGET_OS", ""),
        )
        target_arch = kwargs.get(
            "target_arch",
            os.environ.get("ONNXLOWER_TARGET_ARCH", ""),
        )
        runtime_version = kwargs.get(
            "runtime_version",
            os.environ.get("ONNXLOWER_RUNTIME_VERSION", "0"),
        )
        target_environment = TargetEnvironment(
            os_name=str(target_os).strip().lower(),
            arch=str(target_arch).strip().lower(),
            runtime_version=int(runtime_version),
        )
    return LoweringOptions(
        target_dialect=TargetDialect.parse(target_dialect),
        int64_supported=_to_bool(int64_supported, "int64_supported"),
        target_environment=target_environment,
    )
