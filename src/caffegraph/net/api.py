from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from jsonschema import Draft202012Validator

from .errors import NetValidationError, StructuralError
from .models import BlobShape, InputParam, LayerRecord, NetDescription
from .schema import NET_JSON_SCHEMA
from .validators import run_additional_checks


def dump_schema(path: Path) -> None:
    path.write_text(json.dumps(NET_JSON_SCHEMA, indent=2))


def _validate_schema(net_dict: dict) -> None:
    validator = Draft202012Validator(NET_JSON_SCHEMA)
    errors = sorted(validator.iter_errors(net_dict), key=lambda e: list(e.path))
    if errors:
        msg = "\n".join(
            [
                f"{list(e.path)}: {e.message}" if e.path else e.message
                for e in errors
            ]
        )
        raise NetValidationError(msg)


def load_validate_yaml(path: Path) -> NetDescription:
    try:
        net_dict = yaml.safe_load(Path(path).read_text())
    except yaml.YAMLError as exc:
        raise NetValidationError(f"{path}: {exc}") from exc
    if net_dict is None:
        net_dict = {}
    if not isinstance(net_dict, dict):
        raise NetValidationError(f"{path}: expected a mapping at the top level")
    _validate_schema(net_dict)
    try:
        net = NetDescription.model_validate(net_dict)
    except Exception as exc:  # pydantic ValidationError
        raise NetValidationError(str(exc)) from exc
    run_additional_checks(net)
    return net


def _strip_batch(shape: BlobShape) -> List[int]:
    return list(shape.dim[1:])


def _from_input_params(net: NetDescription) -> Optional[Tuple[str, List[List[int]]]]:
    # the first layer wins; otherwise the first later layer that carries a shape
    for layer in net.layers:
        if layer.input_param is not None and layer.input_param.shape and layer.outputs:
            return layer.outputs[0], [_strip_batch(s) for s in layer.input_param.shape]
    return None


def _from_legacy_fields(net: Optional[NetDescription]) -> Optional[Tuple[str, List[List[int]]]]:
    if net is None or not net.input:
        return None
    if net.input_dim:
        # the first input is assumed to be the data blob
        return net.input[0], [list(net.input_dim[1:4])]
    if net.input_shape:
        return net.input[0], [_strip_batch(net.input_shape[0])]
    return None


def canonicalize_input(
    net: NetDescription, config: Optional[NetDescription] = None
) -> List[LayerRecord]:
    """
    Return the net's records with a synthesized ``Data`` record appended last.

    The synthesized record carries the network input shape without the batch
    dimension, taken from an explicit ``input_param`` in the parameter file, from
    the parameter file's legacy ``input_dim``/``input_shape`` fields, or from
    the same legacy fields of the companion text config, in that order.
    """
    found = _from_input_params(net) or _from_legacy_fields(net) or _from_legacy_fields(config)
    if found is None:
        raise StructuralError("No input shape found in the parameter file or the text config")
    data_name, shapes = found
    if any(not shape for shape in shapes):
        raise StructuralError(
            f"Input '{data_name}' has no dimensions left after removing the batch size",
            layer=data_name,
        )
    canon = LayerRecord(
        name=data_name,
        type="Data",
        outputs=[data_name],
        input_param=InputParam(shape=[BlobShape(dim=shape) for shape in shapes]),
    )
    return list(net.layers) + [canon]


def load_parameters(path: Path, config_path: Optional[Path] = None) -> List[LayerRecord]:
    net = load_validate_yaml(path)
    config = load_validate_yaml(config_path) if config_path is not None else None
    return canonicalize_input(net, config)
