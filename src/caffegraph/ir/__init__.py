from .shapes import infer_shapes
from .types import Diagnostic, Graph, ModStr, Node, Shape


__all__ = ["infer_shapes", "Diagnostic", "Graph", "ModStr", "Node", "Shape"]
