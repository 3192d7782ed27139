"""Local demo agent for command invoker integration tests."""

from __future__ import annotations

import argparse
import json
import sys
import time


def main(argv: list[str] | None = None) -> int:
    """Echo the prompt back as a JSON result line."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--prompt", required=True)
    parser.add_argument("--agent-id", default="echo")
    parser.add_argument("--cost", type=float, default=None)
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--fail", default=None, help="Write this message to stderr and exit 1.")
    args = parser.parse_args(argv)

    if args.sleep > 0:
        time.sleep(args.sleep)
    if args.fail:
        sys.stderr.write(f"{args.fail}\n")
        return 1

    payload: dict[str, object] = {"output": f"[{args.agent_id}] {args.prompt.strip()}"}
    if args.cost is not None:
        payload["cost_usd"] = args.cost
    sys.stdout.write(json.dumps(payload) + "\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
