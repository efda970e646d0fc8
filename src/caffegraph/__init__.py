from .builders import build_graph, summarize_graph
from .emit import allocate_parameters, emit_parameters, emit_script, render_script
from .net import (
    ConversionError,
    NetValidationError,
    ShapeMismatchError,
    StructuralError,
    load_parameters,
)


__all__ = [
    "build_graph",
    "summarize_graph",
    "allocate_parameters",
    "emit_parameters",
    "emit_script",
    "render_script",
    "ConversionError",
    "NetValidationError",
    "ShapeMismatchError",
    "StructuralError",
    "load_parameters",
]
