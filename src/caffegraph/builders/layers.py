from __future__ import annotations

import re
from typing import Callable, Dict, List, Optional, Sequence, Type

from caffegraph.ir.shapes import (
    convolution_outputs,
    convolution_window,
    flatten_size,
    pooling_window,
)
from caffegraph.ir.types import ModStr, Node, Shape
from caffegraph.net.errors import UnsupportedKindDiagnostic, UnsupportedOptionWarning
from caffegraph.net.models import LayerKind, LayerRecord


SLOTS_PER_STEP = 2  # (weight, bias) per emitted module

_LUA_KEYWORDS = frozenset(
    """
    and break do else elseif end false for function goto if in local nil not or
    repeat return then true until while
    """.split()
)

Report = Callable[[Type[Warning], str], None]
# hands out an unused binding for an intermediate step
Fresh = Callable[[str], str]
EmitFn = Callable[[LayerRecord, str, List[Node], List[Shape], Report, Fresh], List[ModStr]]


def lua_identifier(name: str) -> str:
    ident = re.sub(r"[^A-Za-z0-9_]", "_", name)
    if not ident or ident[0].isdigit() or ident in _LUA_KEYWORDS:
        ident = "_" + ident
    return ident


def _fmt(value: float) -> str:
    return f"{value:g}"


def _join(values: Sequence[object]) -> str:
    return ", ".join(str(v) for v in values)


def _innermost_first(values: Sequence[int]) -> List[int]:
    # caffe orders spatial axes (T,) H, W; torch constructors take W before H
    if len(values) == 2:
        return [values[1], values[0]]
    if len(values) == 3:
        return [values[0], values[2], values[1]]
    return list(values)


def _single_input(inputs: List[Node]) -> str:
    return inputs[0].binding


def _table_input(inputs: List[Node]) -> str:
    return "{" + _join(node.binding for node in inputs) + "}"


def _emit_root(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    return [ModStr(binding, "nn.Identity()")]


def _group(record: LayerRecord) -> int:
    param = record.convolution_param
    # caffe treats group 0 as 1
    return param.group if param is not None and param.group else 1


def _emit_convolution(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    param = record.convolution_param
    window = convolution_window(record)
    group = _group(record)
    n_in = record.blobs[0].shape[1] * group
    n_out = convolution_outputs(record)
    if group > 1:
        report(UnsupportedOptionWarning, f"Convolution '{record.name}' uses group={group}")
    if param is not None and any(d > 1 for d in param.dilation):
        report(
            UnsupportedOptionWarning,
            f"Convolution '{record.name}' uses dilation={param.dilation}",
        )

    if window.rank == 1:
        if window.pad[0]:
            report(
                UnsupportedOptionWarning,
                f"Convolution '{record.name}' pads a temporal convolution",
            )
        expr = f"nn.TemporalConvolution({_join([n_in, n_out, window.kernel[0], window.stride[0]])})"
        return [ModStr(binding, expr, _single_input(inputs))]

    module = "nn.SpatialConvolution" if window.rank == 2 else "nn.VolumetricConvolution"
    args = (
        [n_in, n_out]
        + _innermost_first(window.kernel)
        + _innermost_first(window.stride)
        + _innermost_first(window.pad)
    )
    return [ModStr(binding, f"{module}({_join(args)})", _single_input(inputs))]


def _emit_pooling(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    param = record.pooling_param
    window = pooling_window(record, inputs[0].output_shape)
    pool = "Max" if param.pool == "MAX" else "Average"
    if param.pool == "STOCHASTIC":
        report(
            UnsupportedOptionWarning,
            f"Pooling '{record.name}' uses STOCHASTIC pooling, emitted as average pooling",
        )
    args = (
        _innermost_first(window.kernel)
        + _innermost_first(window.stride)
        + _innermost_first(window.pad)
    )
    return [ModStr(binding, f"nn.Spatial{pool}Pooling({_join(args)}):ceil()", _single_input(inputs))]


_BATCH_NORM_PREFIX = {1: "", 3: "Spatial", 4: "Volumetric"}


def _emit_batch_norm(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    input_shape = inputs[0].output_shape
    eps = record.batch_norm_param.eps if record.batch_norm_param else 1e-5
    fraction = (
        record.batch_norm_param.moving_average_fraction if record.batch_norm_param else 0.999
    )
    prefix = _BATCH_NORM_PREFIX.get(len(input_shape))
    if prefix is None:
        report(
            UnsupportedOptionWarning,
            f"BatchNorm '{record.name}' on a {len(input_shape)}-d input",
        )
        prefix = ""
    args = [input_shape[0], _fmt(eps), _fmt(1.0 - fraction)]
    return [ModStr(binding, f"nn.{prefix}BatchNormalization({_join(args)})", _single_input(inputs))]


def _emit_inner_product(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    input_shape = inputs[0].output_shape
    collapse = fresh(f"{binding}_collapse")
    linear = f"nn.Linear({flatten_size(input_shape)}, {output_shapes[0][0]})"
    return [
        ModStr(collapse, f"nn.View(-1):setNumInputDims({len(input_shape)})", _single_input(inputs)),
        ModStr(binding, linear, collapse),
    ]


_ELTWISE_MODULES = {"SUM": "nn.CAddTable()", "PROD": "nn.CMulTable()", "MAX": "nn.CMaxTable()"}


def _emit_eltwise(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    param = record.eltwise_param
    operation = param.operation if param is not None else "SUM"
    if param is not None and any(c != 1.0 for c in param.coeff):
        report(
            UnsupportedOptionWarning,
            f"Eltwise '{record.name}' ignores coeff={param.coeff}",
        )
    shapes = {node.output_shape for node in inputs}
    if len(shapes) > 1:
        report(
            UnsupportedOptionWarning,
            f"Eltwise '{record.name}' combines mismatched shapes {sorted(list(s) for s in shapes)}",
        )
    return [ModStr(binding, _ELTWISE_MODULES[operation], _table_input(inputs))]


def _emit_concat(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    axis = record.concat_param.axis if record.concat_param else 1
    ndim = len(inputs[0].output_shape)
    return [ModStr(binding, f"nn.JoinTable({axis}, {ndim})", _table_input(inputs))]


def _emit_scale(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    param = record.scale_param
    if len(inputs) > 1:
        report(
            UnsupportedOptionWarning,
            f"Scale '{record.name}' takes its scale from a second input, which is not converted",
        )
    input_shape = inputs[0].output_shape
    cmul = f"nn.CMul({_join(input_shape)})"
    if param is not None and param.bias_term:
        scaled = fresh(f"{binding}_scale")
        return [
            ModStr(scaled, cmul, _single_input(inputs)),
            ModStr(binding, f"nn.Add({flatten_size(input_shape)})", scaled),
        ]
    return [ModStr(binding, cmul, _single_input(inputs))]


def _emit_relu(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    slope = record.relu_param.negative_slope if record.relu_param else 0.0
    if slope:
        return [ModStr(binding, f"nn.LeakyReLU({_fmt(slope)}, true)", _single_input(inputs))]
    return [ModStr(binding, "nn.ReLU(true)", _single_input(inputs))]


def _emit_dropout(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    ratio = record.dropout_param.dropout_ratio if record.dropout_param else 0.5
    return [ModStr(binding, f"nn.Dropout({_fmt(ratio)})", _single_input(inputs))]


def _fixed(expression: str) -> EmitFn:
    def emit(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
        return [ModStr(binding, expression, _single_input(inputs))]

    return emit


def _emit_unsupported(record, binding, inputs, output_shapes, report, fresh) -> List[ModStr]:
    report(
        UnsupportedKindDiagnostic,
        f"No conversion for layer '{record.name}' of type {record.type}, passing its input through",
    )
    note = f"Missing: {record.type} ({record.name})"
    return [ModStr(binding, "nn.Identity()", _single_input(inputs), note=note)]


EMITTERS: Dict[LayerKind, EmitFn] = {
    LayerKind.DATA: _emit_root,
    LayerKind.INPUT: _emit_root,
    LayerKind.CONVOLUTION: _emit_convolution,
    LayerKind.POOLING: _emit_pooling,
    LayerKind.BATCH_NORM: _emit_batch_norm,
    LayerKind.INNER_PRODUCT: _emit_inner_product,
    LayerKind.ELTWISE: _emit_eltwise,
    LayerKind.CONCAT: _emit_concat,
    LayerKind.SCALE: _emit_scale,
    LayerKind.RELU: _emit_relu,
    LayerKind.SIGMOID: _fixed("nn.Sigmoid()"),
    LayerKind.TANH: _fixed("nn.Tanh()"),
    LayerKind.DROPOUT: _emit_dropout,
    LayerKind.SOFTMAX: _fixed("nn.SoftMax()"),
    LayerKind.UNSUPPORTED: _emit_unsupported,
}


def emit_layer(
    kind: LayerKind,
    record: LayerRecord,
    binding: str,
    inputs: List[Node],
    output_shapes: List[Shape],
    report: Report,
    fresh: Fresh,
) -> List[ModStr]:
    return EMITTERS[kind](record, binding, inputs, output_shapes, report, fresh)


# Parameter slots: one expected shape (or None) per destination buffer.

SlotShapes = List[Optional[List[int]]]


def _no_slots(node: Node) -> SlotShapes:
    return [None] * (SLOTS_PER_STEP * len(node.emission))


def _convolution_slots(node: Node) -> SlotShapes:
    record = node.record
    window = convolution_window(record)
    n_in = record.blobs[0].shape[1] * _group(record)
    n_out = node.output_shape[0]
    if window.rank == 1:
        weight = [n_out, n_in * window.kernel[0]]
    else:
        weight = [n_out, n_in] + list(window.kernel)
    return [weight, [n_out]]


def _batch_norm_slots(node: Node) -> SlotShapes:
    channels = node.input_shapes[0][0]
    return [[channels], [channels]]


def _inner_product_slots(node: Node) -> SlotShapes:
    n_out = node.output_shape[0]
    return [None, None, [n_out, flatten_size(node.input_shapes[0])], [n_out]]


def _scale_slots(node: Node) -> SlotShapes:
    input_shape = node.input_shapes[0]
    slots: SlotShapes = [list(input_shape), None]
    if node.record.scale_param is not None and node.record.scale_param.bias_term:
        slots += [None, [flatten_size(input_shape)]]
    return slots


SLOT_LAYOUTS: Dict[LayerKind, Callable[[Node], SlotShapes]] = {
    LayerKind.DATA: _no_slots,
    LayerKind.INPUT: _no_slots,
    LayerKind.CONVOLUTION: _convolution_slots,
    LayerKind.POOLING: _no_slots,
    LayerKind.BATCH_NORM: _batch_norm_slots,
    LayerKind.INNER_PRODUCT: _inner_product_slots,
    LayerKind.ELTWISE: _no_slots,
    LayerKind.CONCAT: _no_slots,
    LayerKind.SCALE: _scale_slots,
    LayerKind.RELU: _no_slots,
    LayerKind.SIGMOID: _no_slots,
    LayerKind.TANH: _no_slots,
    LayerKind.DROPOUT: _no_slots,
    LayerKind.SOFTMAX: _no_slots,
    LayerKind.UNSUPPORTED: _no_slots,
}


def slot_shapes(node: Node) -> SlotShapes:
    """Expected destination buffer shape per parameter slot of ``node``."""
    return SLOT_LAYOUTS[node.kind](node)
