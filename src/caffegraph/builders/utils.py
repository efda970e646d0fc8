from __future__ import annotations

from collections import Counter
from typing import Dict

from caffegraph.ir.types import Graph

from .layers import slot_shapes


def summarize_graph(graph: Graph) -> Dict[str, object]:
    """
    Produce lightweight graph metadata (used by the runners for reporting).
    """
    counter: Counter = Counter()
    parameter_count = 0
    for node in graph.nodes:
        counter[node.kind.value] += 1
        for shape in slot_shapes(node):
            if shape is None:
                continue
            size = 1
            for dim in shape:
                size *= dim
            parameter_count += size

    diagnostic_counts: Counter = Counter(d.category.__name__ for d in graph.diagnostics)

    return {
        "nodes": len(graph.nodes),
        "kind_counts": dict(counter),
        "roots": [node.name for node in graph.roots],
        "tips": graph.tips,
        "output_shapes": {node.name: [list(s) for s in node.output_shapes] for node in graph.nodes},
        "parameters": parameter_count,
        "diagnostics": dict(diagnostic_counts),
    }
