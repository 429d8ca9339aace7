"""Entry point for ``python -m gpu_snapshot``."""

from __future__ import annotations

import sys

from gpu_snapshot.app import main

if __name__ == "__main__":
    sys.exit(main())
