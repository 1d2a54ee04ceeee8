from __future__ import annotations

import sys
from pathlib import Path


def pytest_configure() -> None:
    """Ensure the repository root is on sys.path.

    pytest may pick `mixedmargins/` itself as rootdir when invoked from inside
    the package; importing the top-level package `mixedmargins` then fails
    unless the parent directory is on `sys.path`.
    """

    repo_root = Path(__file__).resolve().parents[2]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)
