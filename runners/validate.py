#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from pathlib import Path

from caffegraph.builders import build_graph, summarize_graph
from caffegraph.net.api import load_parameters
from caffegraph.net.errors import StructuralError


def main() -> int:
    ap = argparse.ArgumentParser(description="Validate a Caffe net description")
    ap.add_argument("--params", type=str, required=True, help="Path to net description (YAML/JSON)")
    ap.add_argument("--config", type=str, default=None, help="Deploy config with legacy input fields")
    args = ap.parse_args()
    config = Path(args.config) if args.config else None
    try:
        records = load_parameters(Path(args.params), config)
        graph = build_graph(records, sink=None)
    except StructuralError as e:
        print("INVALID\n---")
        print(e)
        return 1
    print("VALID\n---")
    print(json.dumps(summarize_graph(graph), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
