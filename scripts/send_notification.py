#!/usr/bin/env python3
"""Command-line entrypoint for sending a Telegram notification."""

import sys
from pathlib import Path

# Allow running from a checkout without installing the package
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from chatnotify.cli import main  # noqa: E402

if __name__ == "__main__":  # pragma: no cover - script entrypoint
    raise SystemExit(main())
