from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from caffegraph.net.errors import StructuralError
from caffegraph.net.models import LayerKind, LayerRecord

from .types import Shape


@dataclass(frozen=True)
class Window:
    """Kernel, padding and stride per spatial axis, outermost axis first."""

    kernel: Tuple[int, ...]
    pad: Tuple[int, ...]
    stride: Tuple[int, ...]

    @property
    def rank(self) -> int:
        return len(self.kernel)


def repeat_first(values: Sequence[int], length: int) -> Tuple[int, ...]:
    out = list(values)
    while len(out) < length:
        out.append(out[0])
    return tuple(out)


def window_extent(size: int, kernel: int, pad: int, stride: int, *, ceil_mode: bool) -> int:
    span = size + 2 * pad - kernel
    if ceil_mode:
        out = -(-span // stride) + 1
        # the last window must start inside the image or its leading pad
        if pad > 0 and (out - 1) * stride >= size + pad:
            out -= 1
        return out
    return span // stride + 1


def windowed_shape(
    input_shape: Shape,
    channels: int,
    window: Window,
    *,
    ceil_mode: bool,
    layer: Optional[str] = None,
) -> Shape:
    spatial = input_shape[1:]
    if len(spatial) != window.rank:
        raise StructuralError(
            f"{window.rank}-d window of layer '{layer}' does not fit input shape {list(input_shape)}",
            layer=layer,
        )
    out = [channels]
    for i, size in enumerate(spatial):
        out.append(
            window_extent(size, window.kernel[i], window.pad[i], window.stride[i], ceil_mode=ceil_mode)
        )
    return tuple(out)


def flatten_size(shape: Shape) -> int:
    total = 1
    for dim in shape:
        total *= dim
    return total


def affine_shape(num_output: int) -> Shape:
    return (num_output,)


def concat_shape(input_shapes: Sequence[Shape], axis: int) -> Shape:
    first = list(input_shapes[0])
    if not 0 <= axis < len(first):
        raise StructuralError(f"Concat axis {axis + 1} out of range for shape {first}")
    first[axis] = sum(shape[axis] for shape in input_shapes)
    return tuple(first)


def convolution_window(record: LayerRecord) -> Window:
    if not record.blobs:
        raise StructuralError(
            f"Convolution '{record.name}' has no weight blob", layer=record.name
        )
    param = record.convolution_param
    weight = record.blobs[0]
    rank = len(weight.shape) - 2
    if rank < 1:
        raise StructuralError(
            f"Convolution '{record.name}' weight blob has shape {weight.shape}",
            layer=record.name,
        )
    if param is None:
        return Window(tuple(weight.shape[2:]), (0,) * rank, (1,) * rank)

    if param.kernel_h is not None or param.kernel_w is not None:
        kernel = (param.kernel_h or weight.shape[2], param.kernel_w or weight.shape[-1])
    elif param.kernel_size:
        kernel = repeat_first(param.kernel_size, rank)
    else:
        kernel = tuple(weight.shape[2:])

    if param.pad_h is not None or param.pad_w is not None:
        pad = (param.pad_h or 0, param.pad_w or 0)
    else:
        pad = repeat_first(param.pad or [0], rank)

    if param.stride_h is not None or param.stride_w is not None:
        stride = (param.stride_h or 1, param.stride_w or 1)
    else:
        stride = repeat_first(param.stride or [1], rank)

    return Window(tuple(kernel), tuple(pad), tuple(stride))


def pooling_window(record: LayerRecord, input_shape: Shape) -> Window:
    param = record.pooling_param
    if param is None:
        raise StructuralError(f"Pooling '{record.name}' has no pooling_param", layer=record.name)
    if param.global_pooling:
        spatial = tuple(input_shape[1:])
        if len(spatial) != 2:
            raise StructuralError(
                f"Pooling '{record.name}' is spatial only, got input shape {list(input_shape)}",
                layer=record.name,
            )
        return Window(spatial, (0, 0), (1, 1))

    def pair(scalar: Optional[int], h: Optional[int], w: Optional[int], default: int) -> Tuple[int, int]:
        if scalar:
            return scalar, scalar
        return (h if h is not None else default, w if w is not None else default)

    kernel = pair(param.kernel_size, param.kernel_h, param.kernel_w, 0)
    if 0 in kernel:
        raise StructuralError(f"Pooling '{record.name}' declares no kernel size", layer=record.name)
    stride = pair(param.stride, param.stride_h, param.stride_w, 1)
    pad = pair(param.pad, param.pad_h, param.pad_w, 0)
    return Window(kernel, pad, stride)


def convolution_outputs(record: LayerRecord) -> int:
    param = record.convolution_param
    if param is not None and param.num_output:
        return param.num_output
    return record.blobs[0].shape[0]


# Per-kind rules: (input shapes, record) -> output shapes.

InferFn = Callable[[List[Shape], LayerRecord], List[Shape]]


def _infer_root(input_shapes: List[Shape], record: LayerRecord) -> List[Shape]:
    if record.input_param is None or not record.input_param.shape:
        raise StructuralError(f"Input layer '{record.name}' declares no shape", layer=record.name)
    return [tuple(shape.dim) for shape in record.input_param.shape]


def _infer_convolution(input_shapes: List[Shape], record: LayerRecord) -> List[Shape]:
    window = convolution_window(record)
    channels = convolution_outputs(record)
    return [windowed_shape(input_shapes[0], channels, window, ceil_mode=False, layer=record.name)]


def _infer_pooling(input_shapes: List[Shape], record: LayerRecord) -> List[Shape]:
    window = pooling_window(record, input_shapes[0])
    channels = input_shapes[0][0]
    return [windowed_shape(input_shapes[0], channels, window, ceil_mode=True, layer=record.name)]


def _infer_inner_product(input_shapes: List[Shape], record: LayerRecord) -> List[Shape]:
    param = record.inner_product_param
    if param is None:
        raise StructuralError(
            f"InnerProduct '{record.name}' has no inner_product_param", layer=record.name
        )
    return [affine_shape(param.num_output)]


def _infer_concat(input_shapes: List[Shape], record: LayerRecord) -> List[Shape]:
    axis = record.concat_param.axis if record.concat_param else 1
    return [concat_shape(input_shapes, axis - 1)]


def _infer_passthrough(input_shapes: List[Shape], record: LayerRecord) -> List[Shape]:
    return [input_shapes[0]]


_INFER: Dict[LayerKind, InferFn] = {
    LayerKind.DATA: _infer_root,
    LayerKind.INPUT: _infer_root,
    LayerKind.CONVOLUTION: _infer_convolution,
    LayerKind.POOLING: _infer_pooling,
    LayerKind.BATCH_NORM: _infer_passthrough,
    LayerKind.INNER_PRODUCT: _infer_inner_product,
    LayerKind.ELTWISE: _infer_passthrough,
    LayerKind.CONCAT: _infer_concat,
    LayerKind.SCALE: _infer_passthrough,
    LayerKind.RELU: _infer_passthrough,
    LayerKind.SIGMOID: _infer_passthrough,
    LayerKind.TANH: _infer_passthrough,
    LayerKind.DROPOUT: _infer_passthrough,
    LayerKind.SOFTMAX: _infer_passthrough,
    LayerKind.UNSUPPORTED: _infer_passthrough,
}


def infer_shapes(kind: LayerKind, input_shapes: List[Shape], record: LayerRecord) -> List[Shape]:
    shapes = _INFER[kind](list(input_shapes), record)
    for shape in shapes:
        if any(dim <= 0 for dim in shape):
            raise StructuralError(
                f"Layer '{record.name}' infers non-positive shape {list(shape)} "
                f"from inputs {[list(s) for s in input_shapes]}",
                layer=record.name,
            )
    return shapes
