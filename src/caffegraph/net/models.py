from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LayerKind(str, Enum):
    DATA = "Data"
    INPUT = "Input"
    SPLIT = "Split"
    CONVOLUTION = "Convolution"
    POOLING = "Pooling"
    BATCH_NORM = "BatchNorm"
    INNER_PRODUCT = "InnerProduct"
    ELTWISE = "Eltwise"
    CONCAT = "Concat"
    SCALE = "Scale"
    RELU = "ReLU"
    SIGMOID = "Sigmoid"
    TANH = "TanH"
    DROPOUT = "Dropout"
    SOFTMAX = "Softmax"
    UNSUPPORTED = "Unsupported"

    @classmethod
    def from_type(cls, type_name: str) -> "LayerKind":
        if type_name in _TYPE_ALIASES:
            return _TYPE_ALIASES[type_name]
        # ImageData, HDF5Data, MemoryData, DummyData, ... all feed the network
        if "Data" in type_name:
            return cls.DATA
        try:
            kind = cls(type_name)
        except ValueError:
            return cls.UNSUPPORTED
        return kind

    @property
    def is_root(self) -> bool:
        return self in (LayerKind.DATA, LayerKind.INPUT)

    @property
    def is_alias(self) -> bool:
        return self is LayerKind.SPLIT


_TYPE_ALIASES = {
    "Tanh": LayerKind.TANH,
    "SoftmaxWithLoss": LayerKind.SOFTMAX,
}


def _listify(value: object) -> object:
    if value is None:
        return []
    if isinstance(value, (int, float)):
        return [value]
    return value


class BlobShape(BaseModel):
    dim: List[int] = Field(default_factory=list)


class Blob(BaseModel):
    shape: List[int] = Field(default_factory=list)
    data: List[float] = Field(default_factory=list)

    @property
    def count(self) -> int:
        total = 1
        for dim in self.shape:
            total *= dim
        return total


class ConvolutionParam(BaseModel):
    num_output: Optional[int] = None
    bias_term: bool = True
    kernel_size: List[int] = Field(default_factory=list)
    pad: List[int] = Field(default_factory=list)
    stride: List[int] = Field(default_factory=list)
    dilation: List[int] = Field(default_factory=list)
    kernel_h: Optional[int] = None
    kernel_w: Optional[int] = None
    pad_h: Optional[int] = None
    pad_w: Optional[int] = None
    stride_h: Optional[int] = None
    stride_w: Optional[int] = None
    group: int = Field(default=1, ge=0)

    @field_validator("kernel_size", "pad", "stride", "dilation", mode="before")
    @classmethod
    def _repeated(cls, value: object) -> object:
        return _listify(value)


class PoolingParam(BaseModel):
    pool: Literal["MAX", "AVE", "STOCHASTIC"] = "MAX"
    kernel_size: Optional[int] = None
    kernel_h: Optional[int] = None
    kernel_w: Optional[int] = None
    stride: Optional[int] = None
    stride_h: Optional[int] = None
    stride_w: Optional[int] = None
    pad: Optional[int] = None
    pad_h: Optional[int] = None
    pad_w: Optional[int] = None
    global_pooling: bool = False


class BatchNormParam(BaseModel):
    use_global_stats: Optional[bool] = None
    moving_average_fraction: float = 0.999
    eps: float = 1e-5


class InnerProductParam(BaseModel):
    num_output: int
    bias_term: bool = True
    axis: int = 1


class EltwiseParam(BaseModel):
    operation: Literal["PROD", "SUM", "MAX"] = "SUM"
    coeff: List[float] = Field(default_factory=list)


class ConcatParam(BaseModel):
    axis: int = 1


class ScaleParam(BaseModel):
    axis: int = 1
    num_axes: int = 1
    bias_term: bool = False


class DropoutParam(BaseModel):
    dropout_ratio: float = 0.5


class ReLUParam(BaseModel):
    negative_slope: float = 0.0


class InputParam(BaseModel):
    shape: List[BlobShape] = Field(default_factory=list)


class LayerRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    type: str
    inputs: List[str] = Field(default_factory=list, alias="bottom")
    outputs: List[str] = Field(default_factory=list, alias="top")
    blobs: List[Blob] = Field(default_factory=list)
    input_param: Optional[InputParam] = None
    convolution_param: Optional[ConvolutionParam] = None
    pooling_param: Optional[PoolingParam] = None
    batch_norm_param: Optional[BatchNormParam] = None
    inner_product_param: Optional[InnerProductParam] = None
    eltwise_param: Optional[EltwiseParam] = None
    concat_param: Optional[ConcatParam] = None
    scale_param: Optional[ScaleParam] = None
    dropout_param: Optional[DropoutParam] = None
    relu_param: Optional[ReLUParam] = None

    @field_validator("inputs", "outputs", mode="before")
    @classmethod
    def _names(cls, value: object) -> object:
        if isinstance(value, str):
            return [value]
        return _listify(value)

    @property
    def kind(self) -> LayerKind:
        return LayerKind.from_type(self.type)


class NetDescription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    layers: List[LayerRecord] = Field(default_factory=list, alias="layer")
    # legacy deploy-config input declaration
    input: List[str] = Field(default_factory=list)
    input_dim: List[int] = Field(default_factory=list)
    input_shape: List[BlobShape] = Field(default_factory=list)

    @field_validator("input", mode="before")
    @classmethod
    def _input_names(cls, value: object) -> object:
        if isinstance(value, str):
            return [value]
        return _listify(value)
