from __future__ import annotations

from typing import Any

import numpy as np

from onnxlower.target_builder.ir import WeightBlobIR


_FLOAT_VALUE_SOURCE_DTYPES = {
    np.dtype(np.float32),
    np.dtype(np.int8),
    np.dtype(np.uint8),
    np.dtype(np.int32),
    np.dtype(np.int64),
}


def create_weight_blob(data: Any) -> WeightBlobIR:
    arr = np.asarray(data)
    if arr.dtype == np.dtype(np.float16):
        return WeightBlobIR(
            float16_value=bytes(np.ascontiguousarray(arr.reshape(-1)).tobytes()),
        )
    if arr.dtype in _FLOAT_VALUE_SOURCE_DTYPES:
        return WeightBlobIR(
            float_value=[float(v) for v in arr.reshape(-1).astype(np.float32).tolist()],
        )
    raise NotImplementedError(
        f"Weight blob conversion does not support dtype={arr.dtype} shape={list(arr.shape)}"
    )
