from .graph import GraphBuilder, build_graph, default_sink
from .layers import SLOTS_PER_STEP, lua_identifier, slot_shapes
from .utils import summarize_graph


__all__ = [
    "GraphBuilder",
    "build_graph",
    "default_sink",
    "SLOTS_PER_STEP",
    "lua_identifier",
    "slot_shapes",
    "summarize_graph",
]
