import numpy as np
from onnx import TensorProto

ONNX_DTYPES_TO_TARGET_DTYPES = {
    TensorProto.FLOAT16: "FLOAT16",
    TensorProto.FLOAT: "FLOAT32",
    TensorProto.DOUBLE: "FLOAT64",

    TensorProto.UINT8: "UINT8",
    TensorProto.UINT16: "UINT16",
    TensorProto.UINT32: "UINT32",
    TensorProto.UINT64: "UINT64",

    TensorProto.INT8: "INT8",
    TensorProto.INT16: "INT16",
    TensorProto.INT32: "INT32",
    TensorProto.INT64: "INT64",

    TensorProto.BOOL: "BOOL",

    # TensorProto.STRING
    # TensorProto.BFLOAT16
    # TensorProto.COMPLEX64
}

NUMPY_DTYPES_TO_TARGET_DTYPES = {
    np.dtype('float16'): "FLOAT16",
    np.dtype('float32'): "FLOAT32",
    np.dtype('float64'): "FLOAT64",

    np.dtype('uint8'): "UINT8",
    np.dtype('uint16'): "UINT16",
    np.dtype('uint32'): "UINT32",
    np.dtype('uint64'): "UINT64",

    np.dtype('int8'): "INT8",
    np.dtype('int16'): "INT16",
    np.dtype('int32'): "INT32",
    np.dtype('int64'): "INT64",

    np.dtype('bool_'): "BOOL",
}

TARGET_DTYPES_TO_NUMPY_DTYPES = {
    target_dtype: np_dtype
    for np_dtype, target_dtype in NUMPY_DTYPES_TO_TARGET_DTYPES.items()
}


def target_dtype_from_onnx(elem_type: int) -> str:
    if elem_type not in ONNX_DTYPES_TO_TARGET_DTYPES:
        raise NotImplementedError(f"Unsupported ONNX dtype for lowering: elem_type={elem_type}")
    return ONNX_DTYPES_TO_TARGET_DTYPES[elem_type]


def target_dtype_from_numpy(np_dtype: np.dtype) -> str:
    np_dtype = np.dtype(np_dtype)
    if np_dtype not in NUMPY_DTYPES_TO_TARGET_DTYPES:
        raise NotImplementedError(f"Unsupported numpy dtype for lowering: {np_dtype}")
    return NUMPY_DTYPES_TO_TARGET_DTYPES[np_dtype]
