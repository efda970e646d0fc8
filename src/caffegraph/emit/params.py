from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

import torch

from caffegraph.builders.layers import slot_shapes
from caffegraph.ir.types import Graph, Node, Shape
from caffegraph.net.errors import ShapeMismatchError
from caffegraph.net.models import Blob, LayerKind


Allocator = Callable[..., torch.Tensor]
Buffers = List[Optional[torch.Tensor]]


def _mismatch(node: Node, slot: Optional[int], message: str, expected, actual) -> ShapeMismatchError:
    return ShapeMismatchError(
        message,
        node=node.name,
        kind=node.kind.value,
        slot=slot,
        expected=expected,
        actual=actual,
    )


def _slot(node: Node, buffers: Buffers, slot: int) -> torch.Tensor:
    if slot >= len(buffers) or buffers[slot] is None:
        raise _mismatch(node, slot, f"no destination buffer for slot {slot}", [slot + 1], [len(buffers)])
    return buffers[slot]


def _blob(node: Node, index: int, slot: Optional[int]) -> Blob:
    blobs = node.record.blobs
    if index >= len(blobs):
        raise _mismatch(
            node, slot, f"blob {index} is missing ({len(blobs)} blobs)", [index + 1], [len(blobs)]
        )
    return blobs[index]


def _copy_blob(node: Node, blob: Blob, dest: torch.Tensor, slot: int) -> None:
    if len(blob.data) != dest.numel():
        raise _mismatch(
            node,
            slot,
            f"blob with {len(blob.data)} values does not fill buffer of {dest.numel()}",
            list(dest.shape),
            blob.shape,
        )
    source = torch.tensor(blob.data, dtype=dest.dtype, device=dest.device)
    dest.copy_(source.view(dest.shape))


def broadcast_axis(vector: torch.Tensor, shape: Sequence[int], axis: int) -> torch.Tensor:
    """
    Expand ``vector`` along ``axis`` of ``shape``, repeating it with zero stride
    along every other axis. Returns a contiguous tensor of ``shape``.
    """
    if vector.dim() != 1 or vector.numel() != shape[axis]:
        raise ValueError(
            f"vector of {vector.numel()} values cannot span axis {axis} of {list(shape)}"
        )
    view = [1] * len(shape)
    view[axis] = shape[axis]
    return vector.view(view).expand(*shape).contiguous()


def _bind_convolution(node: Node, buffers: Buffers) -> None:
    weight = _slot(node, buffers, 0)
    bias = _slot(node, buffers, 1)
    _copy_blob(node, _blob(node, 0, 0), weight, 0)
    param = node.record.convolution_param
    if param is not None and not param.bias_term:
        bias.zero_()
    else:
        _copy_blob(node, _blob(node, 1, 1), bias, 1)


def _bind_batch_norm(node: Node, buffers: Buffers) -> None:
    mean = _slot(node, buffers, 0)
    var = _slot(node, buffers, 1)
    _copy_blob(node, _blob(node, 0, 0), mean, 0)
    _copy_blob(node, _blob(node, 1, 1), var, 1)
    # the count blob only rescales, it owns no slot
    count_blob = _blob(node, 2, None)
    if not count_blob.data:
        raise _mismatch(node, None, "accumulation count blob is empty", [1], [0])
    count = count_blob.data[0]
    # running sums become running averages; a zero count leaves zeros
    scale = 0.0 if count == 0 else 1.0 / count
    mean.mul_(scale)
    var.mul_(scale)


def _bind_inner_product(node: Node, buffers: Buffers) -> None:
    # the flatten step ahead of the linear module owns the leading slots
    offset = 2 * (len(node.emission) - 1)
    weight = _slot(node, buffers, offset)
    bias = _slot(node, buffers, offset + 1)
    _copy_blob(node, _blob(node, 0, offset), weight, offset)
    param = node.record.inner_product_param
    if param is not None and not param.bias_term:
        bias.zero_()
    else:
        _copy_blob(node, _blob(node, 1, offset + 1), bias, offset + 1)


def _bind_broadcast(node: Node, blob: Blob, dest: torch.Tensor, slot: int, shape: Shape, axis: int) -> None:
    if not 0 <= axis < len(shape) or len(blob.data) != shape[axis]:
        raise _mismatch(
            node,
            slot,
            f"blob with {len(blob.data)} values does not match axis {axis} of {list(shape)}",
            [shape[axis]] if 0 <= axis < len(shape) else list(shape),
            blob.shape,
        )
    full = broadcast_axis(torch.tensor(blob.data, dtype=dest.dtype), shape, axis)
    if full.numel() != dest.numel():
        raise _mismatch(
            node,
            slot,
            f"broadcast of {full.numel()} values does not fill buffer of {dest.numel()}",
            list(dest.shape),
            list(full.shape),
        )
    dest.copy_(full.view(dest.shape))


def _bind_scale(node: Node, buffers: Buffers) -> None:
    param = node.record.scale_param
    input_shape = node.input_shapes[0]
    axis = (param.axis if param is not None else 1) - 1
    _bind_broadcast(node, _blob(node, 0, 0), _slot(node, buffers, 0), 0, input_shape, axis)
    if param is not None and param.bias_term:
        _bind_broadcast(node, _blob(node, 1, 3), _slot(node, buffers, 3), 3, input_shape, axis)


def _bind_nothing(node: Node, buffers: Buffers) -> None:
    return None


BINDERS: Dict[LayerKind, Callable[[Node, Buffers], None]] = {
    LayerKind.DATA: _bind_nothing,
    LayerKind.INPUT: _bind_nothing,
    LayerKind.CONVOLUTION: _bind_convolution,
    LayerKind.POOLING: _bind_nothing,
    LayerKind.BATCH_NORM: _bind_batch_norm,
    LayerKind.INNER_PRODUCT: _bind_inner_product,
    LayerKind.ELTWISE: _bind_nothing,
    LayerKind.CONCAT: _bind_nothing,
    LayerKind.SCALE: _bind_scale,
    LayerKind.RELU: _bind_nothing,
    LayerKind.SIGMOID: _bind_nothing,
    LayerKind.TANH: _bind_nothing,
    LayerKind.DROPOUT: _bind_nothing,
    LayerKind.SOFTMAX: _bind_nothing,
    LayerKind.UNSUPPORTED: _bind_nothing,
}


def bind(node: Node, buffers: Buffers) -> None:
    """Copy ``node``'s blobs into its destination buffers, one per parameter slot."""
    with torch.no_grad():
        BINDERS[node.kind](node, buffers)


def allocate_parameters(graph: Graph, allocate: Allocator = torch.zeros) -> List[Buffers]:
    params: List[Buffers] = []
    for node in graph.nodes:
        params.append([None if shape is None else allocate(*shape) for shape in slot_shapes(node)])
    return params


def emit_parameters(graph: Graph, buffers: Sequence[Buffers]) -> None:
    if len(buffers) != len(graph.nodes):
        raise ShapeMismatchError(
            f"{len(buffers)} buffer lists for {len(graph.nodes)} nodes",
            expected=[len(graph.nodes)],
            actual=[len(buffers)],
        )
    for node, node_buffers in zip(graph.nodes, buffers):
        bind(node, node_buffers)
