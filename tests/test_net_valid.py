from __future__ import annotations

import json
from pathlib import Path

import pytest

from caffegraph.net.api import canonicalize_input, dump_schema, load_parameters, load_validate_yaml
from caffegraph.net.errors import NetValidationError, StructuralError
from caffegraph.net.models import LayerKind, LayerRecord, NetDescription


EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


@pytest.mark.parametrize("name", ["lenet_tiny.yaml", "resnet_block.yaml", "resnet_deploy.yaml"])
def test_examples_validate(name: str) -> None:
    net = load_validate_yaml(EXAMPLES / name)
    assert isinstance(net, NetDescription)


def test_bottom_top_spellings(tmp_path: Path) -> None:
    p = tmp_path / "net.yaml"
    p.write_text(
        """
layer:
  - {name: data, type: Input, top: data, input_param: {shape: [{dim: [1, 3, 8, 8]}]}}
  - {name: relu, type: ReLU, bottom: data, top: [relu]}
"""
    )
    net = load_validate_yaml(p)
    relu = net.layers[1]
    assert relu.inputs == ["data"]
    assert relu.outputs == ["relu"]
    assert relu.kind is LayerKind.RELU


def test_missing_type_fails(tmp_path: Path) -> None:
    p = tmp_path / "bad.yaml"
    p.write_text("layer:\n  - {name: conv1, bottom: data, top: conv1}\n")
    with pytest.raises(NetValidationError):
        load_validate_yaml(p)


def test_yaml_syntax_error_is_wrapped(tmp_path: Path) -> None:
    p = tmp_path / "broken.yaml"
    p.write_text("layer: [\n  - {name: x\n")
    with pytest.raises(NetValidationError):
        load_validate_yaml(p)


def test_top_level_list_fails(tmp_path: Path) -> None:
    p = tmp_path / "list.yaml"
    p.write_text("- a\n- b\n")
    with pytest.raises(NetValidationError, match="mapping"):
        load_validate_yaml(p)


def test_unknown_pool_method_fails(tmp_path: Path) -> None:
    p = tmp_path / "pool.yaml"
    p.write_text(
        "layer:\n  - {name: p, type: Pooling, bottom: x, top: p, pooling_param: {pool: MEDIAN}}\n"
    )
    with pytest.raises(NetValidationError):
        load_validate_yaml(p)


def test_duplicate_layer_names_fail(tmp_path: Path) -> None:
    p = tmp_path / "dup.yaml"
    p.write_text(
        """
layer:
  - {name: a, type: ReLU, bottom: x, top: a}
  - {name: a, type: ReLU, bottom: a, top: b}
"""
    )
    with pytest.raises(NetValidationError, match="Duplicate"):
        load_validate_yaml(p)


def test_split_requires_single_bottom(tmp_path: Path) -> None:
    p = tmp_path / "split.yaml"
    p.write_text("layer:\n  - {name: s, type: Split, bottom: [a, b], top: [c, d]}\n")
    with pytest.raises(NetValidationError, match="exactly one bottom"):
        load_validate_yaml(p)


def test_eltwise_coeff_count(tmp_path: Path) -> None:
    p = tmp_path / "elt.yaml"
    p.write_text(
        """
layer:
  - name: sum
    type: Eltwise
    bottom: [a, b]
    top: sum
    eltwise_param: {operation: SUM, coeff: [1.0, 1.0, 1.0]}
"""
    )
    with pytest.raises(NetValidationError, match="coeffs"):
        load_validate_yaml(p)


def test_eltwise_coeff_requires_sum(tmp_path: Path) -> None:
    p = tmp_path / "elt.yaml"
    p.write_text(
        """
layer:
  - name: prod
    type: Eltwise
    bottom: [a, b]
    top: prod
    eltwise_param: {operation: PROD, coeff: [1.0, 2.0]}
"""
    )
    with pytest.raises(NetValidationError):
        load_validate_yaml(p)


def test_short_input_dim_fails(tmp_path: Path) -> None:
    p = tmp_path / "deploy.yaml"
    p.write_text("input: data\ninput_dim: [1, 3]\n")
    with pytest.raises(NetValidationError, match="input_dim"):
        load_validate_yaml(p)


def test_input_dim_without_name_fails(tmp_path: Path) -> None:
    p = tmp_path / "deploy.yaml"
    p.write_text("input_dim: [1, 3, 8, 8]\n")
    with pytest.raises(NetValidationError):
        load_validate_yaml(p)


@pytest.mark.parametrize(
    "type_name,kind",
    [
        ("Data", LayerKind.DATA),
        ("ImageData", LayerKind.DATA),
        ("HDF5Data", LayerKind.DATA),
        ("Input", LayerKind.INPUT),
        ("Split", LayerKind.SPLIT),
        ("Convolution", LayerKind.CONVOLUTION),
        ("BatchNorm", LayerKind.BATCH_NORM),
        ("TanH", LayerKind.TANH),
        ("Tanh", LayerKind.TANH),
        ("Softmax", LayerKind.SOFTMAX),
        ("SoftmaxWithLoss", LayerKind.SOFTMAX),
        ("LRN", LayerKind.UNSUPPORTED),
        ("Unsupported", LayerKind.UNSUPPORTED),
    ],
)
def test_layer_kind_from_type(type_name: str, kind: LayerKind) -> None:
    assert LayerKind.from_type(type_name) is kind


def test_canonical_input_from_input_param() -> None:
    records = load_parameters(EXAMPLES / "lenet_tiny.yaml")
    canon = records[-1]
    assert canon.type == "Data"
    assert canon.name == "data"
    assert canon.outputs == ["data"]
    # batch dimension stripped
    assert canon.input_param.shape[0].dim == [1, 6, 6]
    assert len(records) == 7


def test_canonical_input_from_deploy_config() -> None:
    records = load_parameters(EXAMPLES / "resnet_block.yaml", EXAMPLES / "resnet_deploy.yaml")
    canon = records[-1]
    assert canon.name == "data"
    assert canon.input_param.shape[0].dim == [2, 4, 4]


def test_canonical_input_missing_fails() -> None:
    with pytest.raises(StructuralError, match="No input shape"):
        load_parameters(EXAMPLES / "resnet_block.yaml")


def test_canonical_input_prefers_parameter_file_legacy_fields() -> None:
    net = NetDescription.model_validate(
        {"input": "img", "input_shape": [{"dim": [1, 3, 5, 5]}], "layer": []}
    )
    config = NetDescription.model_validate({"input": "other", "input_dim": [1, 1, 2, 2]})
    records = canonicalize_input(net, config)
    assert records[-1].name == "img"
    assert records[-1].input_param.shape[0].dim == [3, 5, 5]


def test_canonical_input_from_later_layer() -> None:
    net = NetDescription(
        layers=[
            LayerRecord(name="relu", type="ReLU", inputs=["x"], outputs=["relu"]),
            LayerRecord(
                name="x",
                type="Input",
                outputs=["x"],
                input_param={"shape": [{"dim": [4, 7]}]},
            ),
        ]
    )
    records = canonicalize_input(net)
    assert records[-1].name == "x"
    assert records[-1].input_param.shape[0].dim == [7]


def test_canonical_input_names_first_top() -> None:
    net = NetDescription(
        layers=[
            LayerRecord(
                name="input",
                type="Input",
                outputs=["data", "label"],
                input_param={"shape": [{"dim": [1, 2, 4, 4]}, {"dim": [1, 1]}]},
            ),
        ]
    )
    canon = canonicalize_input(net)[-1]
    assert canon.name == "data"
    assert canon.outputs == ["data"]
    assert canon.input_param.shape[0].dim == [2, 4, 4]


def test_canonical_input_batch_only_fails() -> None:
    net = NetDescription.model_validate({"input": "x", "input_shape": [{"dim": [1]}]})
    with pytest.raises(StructuralError, match="batch"):
        canonicalize_input(net)


def test_dump_schema_round_trips(tmp_path: Path) -> None:
    p = tmp_path / "schema.json"
    dump_schema(p)
    schema = json.loads(p.read_text())
    assert schema["definitions"]["layer"]["required"] == ["name", "type"]
