from __future__ import annotations

import sys
from typing import Callable, List, Optional, Sequence, Set, Type

from caffegraph.ir.shapes import infer_shapes
from caffegraph.ir.types import Diagnostic, Graph, Node
from caffegraph.net.errors import (
    RedundantInputWarning,
    StructuralError,
    UnresolvedInputWarning,
)
from caffegraph.net.models import LayerRecord

from .layers import emit_layer, lua_identifier


DiagnosticSink = Callable[[Diagnostic], None]


def default_sink(diagnostic: Diagnostic) -> None:
    print(f"[caffegraph] WARN {diagnostic.message}", file=sys.stderr, flush=True)


def _designated_root(records: Sequence[LayerRecord]) -> int:
    # the loader appends the canonical input record last
    if records[-1].kind.is_root:
        return len(records) - 1
    for index, record in enumerate(records):
        if record.kind.is_root:
            return index
    raise StructuralError("No input layer found; cannot determine the network root")


class GraphBuilder:
    """
    Turns an ordered layer list into a Graph of shaped, emittable Nodes.

    Records are visited in list order, except the designated root which is
    visited first. A record may only reference tensors bound by an earlier
    visit; a record with an unbound input is skipped with a diagnostic.
    """

    def __init__(self, sink: Optional[DiagnosticSink] = default_sink) -> None:
        self.sink = sink
        self.graph = Graph()
        self._bindings_used: Set[str] = set()

    def report(self, category: Type[Warning], layer: str, message: str) -> None:
        diagnostic = Diagnostic(category, layer, message)
        self.graph.diagnostics.append(diagnostic)
        if self.sink is not None:
            self.sink(diagnostic)

    def build(self, records: Sequence[LayerRecord]) -> Graph:
        if not records:
            raise StructuralError("Empty layer list")
        root_index = _designated_root(records)
        self._add_node(records[root_index], root=True)
        for index, record in enumerate(records):
            if index == root_index:
                continue
            kind = record.kind
            if kind.is_alias:
                self._add_alias(record)
            elif kind.is_root:
                self._add_extra_root(record)
            else:
                self._add_layer(record)
        return self.graph

    def _add_alias(self, record: LayerRecord) -> None:
        source = record.inputs[0]
        if source not in self.graph.name_bindings:
            self.report(
                UnresolvedInputWarning,
                record.name,
                f"Missing bottom '{source}' for layer '{record.name}'",
            )
            return
        node = self.graph.consume(source)
        for name in record.outputs:
            self.graph.alias(name, node)

    def _add_extra_root(self, record: LayerRecord) -> None:
        bound = self.graph.name_bindings
        # a bound tensor stays with the root that bound it first
        if any(name in bound for name in record.outputs):
            dropped = [name for name in record.outputs if name not in bound]
            message = f"Input layer '{record.name}' tops {record.outputs} are already bound, skipping"
            if dropped:
                message += f" (leaves {dropped} unbound)"
            self.report(RedundantInputWarning, record.name, message)
            return
        if record.input_param is None or not record.input_param.shape:
            self.report(
                RedundantInputWarning,
                record.name,
                f"Input layer '{record.name}' declares no shape, skipping",
            )
            return
        self._add_node(record, root=True)

    def _add_layer(self, record: LayerRecord) -> None:
        if not record.inputs:
            self.report(
                UnresolvedInputWarning,
                record.name,
                f"Layer '{record.name}' ({record.type}) has no bottoms, skipping",
            )
            return
        missing = [name for name in record.inputs if name not in self.graph.name_bindings]
        for name in missing:
            self.report(
                UnresolvedInputWarning,
                record.name,
                f"Missing bottom '{name}' for layer '{record.name}'",
            )
        if missing:
            return
        self._add_node(record, root=False)

    def _unique_binding(self, name: str, node_id: int) -> str:
        binding = lua_identifier(name)
        if binding in self._bindings_used:
            base = f"{binding}_{node_id}"
            binding, n = base, 1
            while binding in self._bindings_used:
                n += 1
                binding = f"{base}_{n}"
        self._bindings_used.add(binding)
        return binding

    def _add_node(self, record: LayerRecord, *, root: bool) -> Node:
        graph = self.graph
        kind = record.kind
        inputs: List[Node] = [] if root else [graph.consume(name) for name in record.inputs]
        output_shapes = infer_shapes(kind, [node.output_shape for node in inputs], record)
        node_id = len(graph.nodes)
        binding = self._unique_binding(record.name, node_id)

        def report(category: Type[Warning], message: str) -> None:
            self.report(category, record.name, message)

        def fresh(name: str) -> str:
            return self._unique_binding(name, node_id)

        emission = emit_layer(kind, record, binding, inputs, output_shapes, report, fresh)
        node = Node(
            id=node_id,
            kind=kind,
            name=record.name,
            binding=binding,
            record=record,
            inputs=inputs,
            output_shapes=output_shapes,
            emission=emission,
        )
        graph.add_node(node)
        # a layer without tops is still a network output, tracked under its own name
        for name in record.outputs or [record.name]:
            graph.produce(name, node)
        if root:
            graph.roots.append(node)
        return node


def build_graph(
    records: Sequence[LayerRecord], sink: Optional[DiagnosticSink] = default_sink
) -> Graph:
    return GraphBuilder(sink).build(records)
