"""Launch the shellplan console from a source checkout.

Equivalent to the installed ``shellplan`` script; ``src/`` is put on the
import path first so no ``pip install`` is needed.
"""

from __future__ import annotations

import sys
from pathlib import Path

SRC_DIR = Path(__file__).resolve().parent / "src"


def _ensure_source_importable() -> None:
    src = str(SRC_DIR)
    if src not in sys.path:
        sys.path.insert(0, src)


if __name__ == "__main__":
    _ensure_source_importable()
    from shellplan.cli import main

    raise SystemExit(main())
