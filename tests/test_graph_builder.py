from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from caffegraph.builders import build_graph, lua_identifier
from caffegraph.builders.layers import EMITTERS, SLOT_LAYOUTS
from caffegraph.emit.lua import render_script
from caffegraph.emit.params import BINDERS
from caffegraph.ir.shapes import _INFER
from caffegraph.ir.types import Diagnostic
from caffegraph.net.api import canonicalize_input, load_parameters
from caffegraph.net.errors import (
    RedundantInputWarning,
    StructuralError,
    UnresolvedInputWarning,
    UnsupportedKindDiagnostic,
)
from caffegraph.net.models import LayerKind, LayerRecord, NetDescription


EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def _data(name: str = "data", dims=(3, 8, 8)) -> LayerRecord:
    return LayerRecord(
        name=name, type="Data", outputs=[name], input_param={"shape": [{"dim": list(dims)}]}
    )


def _layer(name: str, type_name: str, inputs: List[str], outputs=None, **params) -> LayerRecord:
    return LayerRecord(
        name=name,
        type=type_name,
        inputs=inputs,
        outputs=[name] if outputs is None else outputs,
        **params,
    )


def _build(records: List[LayerRecord]):
    collected: List[Diagnostic] = []
    graph = build_graph(records, sink=collected.append)
    return graph, collected


def test_every_kind_has_rules() -> None:
    for kind in LayerKind:
        if kind.is_alias:
            continue
        assert kind in _INFER
        assert kind in EMITTERS
        assert kind in SLOT_LAYOUTS
        assert kind in BINDERS


def test_node_count_and_tips() -> None:
    records = [
        _layer("a", "ReLU", ["data"]),
        _layer("b", "Sigmoid", ["a"]),
        _layer("c", "TanH", ["a"]),
        _data(),
    ]
    graph, diags = _build(records)
    assert len(graph.nodes) == 4
    assert not diags
    assert [node.name for node in graph.roots] == ["data"]
    assert graph.tips == ["b", "c"]
    # the root is built first even though it is last in the list
    assert [node.name for node in graph.nodes] == ["data", "a", "b", "c"]


def test_multi_consumer_is_not_a_tip() -> None:
    records = [
        _data(),
        _layer("a", "ReLU", ["data"]),
        _layer("b", "Sigmoid", ["data"]),
        _layer("sum", "Eltwise", ["a", "b"]),
    ]
    graph, _ = _build(records)
    assert graph.tips == ["sum"]
    assert graph.consumers["data"] == 2


def test_alias_resolves_to_source_node() -> None:
    records = [
        _layer("split", "Split", ["data"], outputs=["x1", "x2"]),
        _layer("a", "ReLU", ["x1"]),
        _layer("b", "Sigmoid", ["x2"]),
        _data(),
    ]
    graph, _ = _build(records)
    assert len(graph.nodes) == 3
    data_node = graph.name_bindings["data"]
    assert graph.name_bindings["x1"] is data_node
    assert graph.name_bindings["x2"] is data_node
    assert graph.nodes[1].inputs[0] is data_node
    assert graph.tips == ["a", "b"]


def test_unconsumed_alias_outputs_are_not_tips() -> None:
    records = [_data(), _layer("split", "Split", ["data"], outputs=["x1", "x2"])]
    graph, _ = _build(records)
    assert graph.tips == []


def test_unresolved_input_skips_layer() -> None:
    records = [
        _data(),
        _layer("a", "ReLU", ["data"]),
        _layer("lost", "ReLU", ["nowhere"]),
        _layer("after", "Sigmoid", ["lost"]),
    ]
    graph, diags = _build(records)
    assert [node.name for node in graph.nodes] == ["data", "a"]
    assert [d.category for d in diags] == [UnresolvedInputWarning, UnresolvedInputWarning]
    assert "nowhere" in diags[0].message
    assert graph.diagnostics == diags
    assert graph.tips == ["a"]


def test_layer_without_bottoms_is_skipped() -> None:
    graph, diags = _build([_data(), _layer("orphan", "ReLU", [])])
    assert len(graph.nodes) == 1
    assert diags[0].category is UnresolvedInputWarning


def test_empty_list_fails() -> None:
    with pytest.raises(StructuralError, match="Empty"):
        build_graph([], sink=None)


def test_missing_root_fails() -> None:
    with pytest.raises(StructuralError, match="root"):
        build_graph([_layer("a", "ReLU", ["x"])], sink=None)


def test_root_without_shape_fails() -> None:
    with pytest.raises(StructuralError):
        build_graph([LayerRecord(name="data", type="Data", outputs=["data"])], sink=None)


def test_redundant_input_layer_is_skipped() -> None:
    records = load_parameters(EXAMPLES / "lenet_tiny.yaml")
    graph, diags = _build(records)
    assert [d.category for d in diags] == [RedundantInputWarning]
    assert [node.name for node in graph.roots] == ["data"]
    assert graph.roots[0].output_shape == (1, 6, 6)
    assert len(graph.nodes) == len(records) - 1


def test_extra_root_with_own_shape() -> None:
    records = [
        LayerRecord(
            name="aux", type="Input", outputs=["aux"], input_param={"shape": [{"dim": [3, 8, 8]}]}
        ),
        _layer("sum", "Eltwise", ["data", "aux"]),
        _data(),
    ]
    graph, _ = _build(records)
    assert [node.name for node in graph.roots] == ["data", "aux"]
    assert graph.tips == ["sum"]


def test_multi_top_input_keeps_single_root() -> None:
    net = NetDescription(
        layers=[
            LayerRecord(
                name="input",
                type="Input",
                outputs=["data", "label"],
                input_param={"shape": [{"dim": [1, 2, 4, 4]}, {"dim": [1, 1]}]},
            ),
            _layer("act", "ReLU", ["data"]),
        ]
    )
    graph, diags = _build(canonicalize_input(net))
    assert [node.name for node in graph.roots] == ["data"]
    act = graph.nodes[-1]
    assert act.inputs[0] is graph.roots[0]
    assert [d.category for d in diags] == [RedundantInputWarning]
    assert "label" in diags[0].message
    assert graph.tips == ["act"]
    assert "model = nn.gModule({data}, {act})" in render_script(graph)


def test_in_place_layers_rebind_names() -> None:
    records = [
        _data(),
        _layer("conv_relu", "ReLU", ["data"], outputs=["data"]),
        _layer("drop", "Dropout", ["data"], outputs=["data"]),
    ]
    graph, _ = _build(records)
    assert graph.tips == ["data"]
    assert graph.name_bindings["data"].name == "drop"
    assert graph.nodes[2].inputs[0].name == "conv_relu"


def test_unsupported_kind_passes_through() -> None:
    records = [_data(), _layer("norm", "LRN", ["data"]), _layer("act", "ReLU", ["norm"])]
    graph, diags = _build(records)
    norm = graph.nodes[1]
    assert norm.kind is LayerKind.UNSUPPORTED
    assert norm.output_shape == (3, 8, 8)
    assert diags[0].category is UnsupportedKindDiagnostic
    assert graph.tips == ["act"]


def test_residual_example() -> None:
    records = load_parameters(EXAMPLES / "resnet_block.yaml", EXAMPLES / "resnet_deploy.yaml")
    graph, diags = _build(records)
    assert not diags
    # Split makes no node
    assert len(graph.nodes) == len(records) - 1
    assert graph.tips == ["prob"]
    add = next(node for node in graph.nodes if node.name == "add1")
    assert [node.name for node in add.inputs] == ["scale1", "data"]
    shapes = {node.name: node.output_shape for node in graph.nodes}
    assert shapes["conv1"] == (2, 4, 4)
    assert shapes["pool1"] == (2, 1, 1)
    assert shapes["fc"] == (3,)


def test_lua_identifier() -> None:
    assert lua_identifier("conv1/3x3") == "conv1_3x3"
    assert lua_identifier("1x1") == "_1x1"
    assert lua_identifier("end") == "_end"
    assert lua_identifier("res2a_branch2a") == "res2a_branch2a"


def test_colliding_bindings_get_suffix() -> None:
    records = [_data(), _layer("a/b", "ReLU", ["data"]), _layer("a_b", "Sigmoid", ["a/b"])]
    graph, _ = _build(records)
    assert [node.binding for node in graph.nodes] == ["data", "a_b", "a_b_2"]


def test_intermediate_steps_get_unused_bindings() -> None:
    records = [
        _data(dims=(2, 2, 2)),
        _layer("fc_collapse", "ReLU", ["data"]),
        _layer("fc", "InnerProduct", ["data"], inner_product_param={"num_output": 3}),
        _layer("sum", "Eltwise", ["fc_collapse", "fc_collapse"]),
        _layer("sc", "Scale", ["data"], scale_param={"bias_term": True}),
        _layer("sc_scale", "Sigmoid", ["sc"]),
    ]
    graph, _ = _build(records)
    fc, total, sc, sigmoid = graph.nodes[2:]
    assert [step.binding for step in fc.emission] == ["fc_collapse_2", "fc"]
    assert fc.emission[1].argument == "fc_collapse_2"
    assert total.emission[0].argument == "{fc_collapse, fc_collapse}"
    assert [step.binding for step in sc.emission] == ["sc_scale", "sc"]
    assert sigmoid.binding == "sc_scale_5"

    script = render_script(graph)
    bound = [
        line.split(" = ")[0]
        for line in script.splitlines()
        if " = " in line and not line.startswith(("modmap", "model"))
    ]
    assert len(bound) == len(set(bound)) == 8


def test_default_sink_prints_tagged_line(capsys) -> None:
    build_graph([_data(), _layer("x", "ReLU", ["missing"])])
    err = capsys.readouterr().err
    assert err.startswith("[caffegraph] WARN ")
    assert "missing" in err


def test_sink_none_still_records() -> None:
    graph = build_graph([_data(), _layer("x", "ReLU", ["missing"])], sink=None)
    assert len(graph.diagnostics) == 1
