from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import torch

from caffegraph.builders.graph import DiagnosticSink, build_graph, default_sink
from caffegraph.builders.utils import summarize_graph
from caffegraph.emit.lua import emit_script
from caffegraph.emit.params import Buffers, allocate_parameters, emit_parameters
from caffegraph.ir.types import Graph
from caffegraph.net.api import load_parameters


@dataclass
class ConversionResult:
    graph: Graph
    lua_path: Path
    weights_path: Optional[Path]
    parameters: Dict[str, Buffers]
    summary: Dict[str, object]


def convert_net(
    params_path: Path,
    lua_path: Path,
    *,
    config_path: Optional[Path] = None,
    weights_path: Optional[Path] = None,
    sink: Optional[DiagnosticSink] = default_sink,
) -> ConversionResult:
    """
    Convert a net description into an nngraph script and populated parameters.

    The script goes to ``lua_path``. Parameter buffers are keyed by node
    binding in construction order, matching the script's ``modmap`` entries;
    they are saved with ``torch.save`` when ``weights_path`` is given.
    """
    records = load_parameters(Path(params_path), Path(config_path) if config_path else None)
    graph = build_graph(records, sink=sink)

    lua_path = Path(lua_path)
    lua_path.parent.mkdir(parents=True, exist_ok=True)
    with lua_path.open("w", encoding="utf-8") as fh:
        emit_script(graph, fh)

    buffers: List[Buffers] = allocate_parameters(graph)
    emit_parameters(graph, buffers)
    parameters = {node.binding: node_buffers for node, node_buffers in zip(graph.nodes, buffers)}

    if weights_path is not None:
        weights_path = Path(weights_path)
        weights_path.parent.mkdir(parents=True, exist_ok=True)
        torch.save(parameters, weights_path)

    return ConversionResult(
        graph=graph,
        lua_path=lua_path,
        weights_path=weights_path,
        parameters=parameters,
        summary=summarize_graph(graph),
    )
