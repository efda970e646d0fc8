#!/usr/bin/env python3
from __future__ import annotations

import argparse
from pathlib import Path

from caffegraph.builders.graph import default_sink
from caffegraph.convert import convert_net
from caffegraph.net.errors import ConversionError


def main() -> int:
    parser = argparse.ArgumentParser(description="Convert a Caffe net description to an nngraph script")
    parser.add_argument("--params", required=True, type=Path, help="Net description with blobs (YAML/JSON)")
    parser.add_argument("--config", type=Path, default=None, help="Deploy config with legacy input fields")
    parser.add_argument("--lua", required=True, type=Path, help="Output Lua script")
    parser.add_argument("--weights", type=Path, default=None, help="Output parameter file (torch.save)")
    parser.add_argument("--quiet", action="store_true", help="Do not print conversion warnings")
    args = parser.parse_args()

    try:
        result = convert_net(
            args.params,
            args.lua,
            config_path=args.config,
            weights_path=args.weights,
            sink=None if args.quiet else default_sink,
        )
    except ConversionError as e:
        print(f"[caffegraph] FAILED {type(e).__name__}: {e}", flush=True)
        return 1

    summary = result.summary
    print(f"[caffegraph] wrote {result.lua_path}", flush=True)
    if result.weights_path is not None:
        print(f"[caffegraph] wrote {result.weights_path}", flush=True)
    print(f"Nodes: {summary['nodes']}")
    print(f"Roots: {summary['roots']}")
    print(f"Tips: {summary['tips']}")
    print(f"Parameters: {summary['parameters']}")
    if summary["diagnostics"]:
        print(f"Diagnostics: {summary['diagnostics']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
