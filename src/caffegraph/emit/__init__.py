from .lua import emit_script, render_script
from .params import allocate_parameters, bind, broadcast_axis, emit_parameters


__all__ = [
    "emit_script",
    "render_script",
    "allocate_parameters",
    "bind",
    "broadcast_axis",
    "emit_parameters",
]
