from __future__ import annotations

import sys
from pathlib import Path


def pytest_configure() -> None:
    """
    Make `import app...` work whichever directory pytest is started from.

    Tests run both from the repo root (pyproject testpaths) and from
    `apps/backend` directly.
    """
    backend_root = str(Path(__file__).resolve().parent)
    if backend_root not in sys.path:
        sys.path.insert(0, backend_root)
