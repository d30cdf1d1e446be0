from __future__ import annotations

import sys
from pathlib import Path

# Ensure local src/ is importable when running from project root
ROOT = Path(__file__).parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Prefer line-buffered output so progress prints appear promptly under wrappers
sys.stdout.reconfigure(line_buffering=True)
sys.stderr.reconfigure(line_buffering=True)

from metaenc.cli import main  # noqa: E402


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
