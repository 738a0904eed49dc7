#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[cascade] ports={os.environ.get('CASCADE_CDP_PORTS') or os.environ.get('CASCADE_CDP_PORT_RANGE', '9222-9230')} | "
    f"poll={os.environ.get('CASCADE_POLL_INTERVAL_MS', '2000')}ms | "
    f"discovery={os.environ.get('CASCADE_DISCOVERY_INTERVAL_MS', '5000')}ms",
    file=sys.stderr,
)

from cdp_servers.cascade_mirror.main import main  # noqa: E402

if __name__ == "__main__":
    main()
