from __future__ import annotations

from typing import Any, Optional

from onnxlower.target_builder.model_builder import ModelConstructionError
from onnxlower.target_builder.op_registry import (
    DispatchEntry,
    DispatchRegistry,
    resolve_node_dispatch,
)
from onnxlower.utils.logging import *


def dispatch_node(
    node: Any,
    ctx: Any,
    registry: Optional[DispatchRegistry] = None,
) -> DispatchEntry:
    """Lowers one node into ``ctx``.

    Raises NodeValidationError when the node is not eligible; nothing has been
    emitted in that case. Once the node is eligible, every failure is a
    ModelConstructionError.
    """
    entry = resolve_node_dispatch(node, ctx, registry=registry)

    if entry.initializers_to_skip is not None:
        for initializer_name in entry.initializers_to_skip(node):
            ctx.add_initializer_to_skip(initializer_name)

    try:
        entry.builder(node, ctx)
    except ModelConstructionError as ex:
        if ex.node_name == "":
            ex.node_name = str(node.name)
            ex.node_op = str(node.op)
        error(
            f"Model construction failed. "
            f"op={node.op} node={node.name} message={ex.message}"
        )
        raise
    except Exception as ex:
        error(
            f"Model construction failed. "
            f"op={node.op} node={node.name} error={type(ex).__name__}: {ex}"
        )
        raise ModelConstructionError(
            f"Lowering of an eligible node failed. op={node.op} node={node.name} "
            f"error={type(ex).__name__}: {ex}",
            node_name=node.name,
            node_op=node.op,
        ) from ex
    return entry
