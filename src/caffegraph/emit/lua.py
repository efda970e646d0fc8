from __future__ import annotations

import io
from typing import List, TextIO

from caffegraph.ir.types import Graph, ModStr


HEADER = "require 'nngraph'\n\nmodmap = {}\n\n"


def _statement(step: ModStr) -> str:
    line = f"{step.binding} = {step.expression}({step.argument})"
    if step.note:
        line += f" -- {step.note}"
    return line


def _composite(graph: Graph) -> str:
    roots = ", ".join(node.binding for node in graph.roots)
    tips = ", ".join(node.binding for node in graph.tip_nodes())
    return f"model = nn.gModule({{{roots}}}, {{{tips}}})"


def emit_script(graph: Graph, out: TextIO) -> None:
    """
    Write the nngraph construction script for ``graph`` to ``out``.

    One binding statement per emitted step, in node construction order, each
    node followed by its ``modmap`` entry; then the ``gModule`` statement over
    the roots and tips, and a trailing ``return model, modmap``.
    """
    out.write(HEADER)
    for node in graph.nodes:
        lines: List[str] = [_statement(step) for step in node.emission]
        bindings = ", ".join(step.binding for step in node.emission)
        lines.append(f"modmap[#modmap+1] = {{{bindings}}}")
        out.write("\n".join(lines) + "\n\n")
    out.write(_composite(graph) + "\n\n")
    out.write("return model, modmap\n")


def render_script(graph: Graph) -> str:
    buf = io.StringIO()
    emit_script(graph, buf)
    return buf.getvalue()
