from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type

from caffegraph.net.models import LayerKind, LayerRecord


Shape = Tuple[int, ...]  # (C, *spatial), batch stripped


@dataclass(frozen=True)
class ModStr:
    binding: str
    expression: str
    argument: str = ""
    note: Optional[str] = None


@dataclass(frozen=True)
class Diagnostic:
    category: Type[Warning]
    layer: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class Node:
    id: int
    kind: LayerKind
    name: str
    binding: str
    record: LayerRecord
    inputs: List["Node"]
    output_shapes: List[Shape]
    emission: List[ModStr] = field(default_factory=list)

    @property
    def output_shape(self) -> Shape:
        return self.output_shapes[0]

    @property
    def input_shapes(self) -> List[Shape]:
        return [node.output_shape for node in self.inputs]

    def __repr__(self) -> str:
        return f"Node({self.id}, {self.kind.value}, {self.name!r}, {list(self.output_shapes)})"


@dataclass
class Graph:
    nodes: List[Node] = field(default_factory=list)
    name_bindings: Dict[str, Node] = field(default_factory=dict)
    roots: List[Node] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    # consumer count per produced name, reset whenever the name is rebound
    consumers: Dict[str, int] = field(default_factory=dict, repr=False)

    @property
    def tips(self) -> List[str]:
        return sorted(name for name, count in self.consumers.items() if count == 0)

    def tip_nodes(self) -> List[Node]:
        seen: List[Node] = []
        for name in self.tips:
            node = self.name_bindings[name]
            if not any(node is other for other in seen):
                seen.append(node)
        return seen

    def add_node(self, node: Node) -> None:
        self.nodes.append(node)

    def produce(self, name: str, node: Node) -> None:
        self.name_bindings[name] = node
        self.consumers[name] = 0

    def alias(self, name: str, node: Node) -> None:
        self.name_bindings[name] = node
        self.consumers.pop(name, None)

    def consume(self, name: str) -> Node:
        if name in self.consumers:
            self.consumers[name] += 1
        return self.name_bindings[name]
