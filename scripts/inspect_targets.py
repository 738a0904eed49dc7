#!/usr/bin/env python3
"""List debug targets with match scores, or inspect one target's contexts.

    inspect_targets.py                 # every target on the configured ports
    inspect_targets.py ws://127.0.0.1:9222/devtools/page/<id>
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from cdp_servers.cascade_mirror.config import MirrorConfig  # noqa: E402
from cdp_servers.cascade_mirror.http_client import HttpClientError  # noqa: E402
from cdp_servers.cascade_mirror.probe import inspect_target, list_candidates  # noqa: E402


def main(argv: list[str]) -> int:
    config = MirrorConfig.from_env()
    try:
        report = inspect_target(config, argv[0]) if argv else list_candidates(config)
    except HttpClientError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
