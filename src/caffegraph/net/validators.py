from __future__ import annotations

from typing import List, Set

from .errors import NetValidationError
from .models import BlobShape, LayerKind, LayerRecord, NetDescription


def _validate_unique_names(layers: List[LayerRecord]) -> None:
    seen: Set[str] = set()
    for layer in layers:
        if layer.name in seen:
            raise NetValidationError(f"Duplicate layer name '{layer.name}'", layer=layer.name)
        seen.add(layer.name)


def _validate_split(layer: LayerRecord) -> None:
    if len(layer.inputs) != 1:
        raise NetValidationError(
            f"Split layer '{layer.name}' requires exactly one bottom (got {len(layer.inputs)})",
            layer=layer.name,
        )
    if not layer.outputs:
        raise NetValidationError(f"Split layer '{layer.name}' declares no tops", layer=layer.name)


def _validate_eltwise(layer: LayerRecord) -> None:
    param = layer.eltwise_param
    if param is None or not param.coeff:
        return
    if param.operation != "SUM":
        raise NetValidationError(
            f"Eltwise layer '{layer.name}' sets coeff for operation {param.operation}",
            layer=layer.name,
        )
    if len(param.coeff) != len(layer.inputs):
        raise NetValidationError(
            f"Eltwise layer '{layer.name}' has {len(param.coeff)} coeffs for "
            f"{len(layer.inputs)} bottoms",
            layer=layer.name,
        )


def _validate_shape(owner: str, shape: BlobShape) -> None:
    if not shape.dim:
        raise NetValidationError(f"{owner} declares an empty input shape")
    if any(dim <= 0 for dim in shape.dim):
        raise NetValidationError(f"{owner} declares non-positive input dims {shape.dim}")


def _validate_input_params(layers: List[LayerRecord]) -> None:
    for layer in layers:
        if layer.input_param is None:
            continue
        for shape in layer.input_param.shape:
            _validate_shape(f"Layer '{layer.name}'", shape)


def _validate_legacy_inputs(net: NetDescription) -> None:
    if net.input_dim and len(net.input_dim) < 4:
        raise NetValidationError(
            f"input_dim needs at least 4 entries (N, C, H, W), got {net.input_dim}"
        )
    if (net.input_dim or net.input_shape) and not net.input:
        raise NetValidationError("input_dim/input_shape given without an 'input' name")
    for shape in net.input_shape:
        _validate_shape("input_shape", shape)


def run_additional_checks(net: NetDescription) -> None:
    _validate_unique_names(net.layers)
    for layer in net.layers:
        kind = layer.kind
        if kind is LayerKind.SPLIT:
            _validate_split(layer)
        elif kind is LayerKind.ELTWISE:
            _validate_eltwise(layer)
    _validate_input_params(net.layers)
    _validate_legacy_inputs(net)
