from __future__ import annotations

import os
import shutil
from collections.abc import Generator
from pathlib import Path
from uuid import uuid4

import pytest

# Keep the module-level engine and log directory out of the user's data dir.
os.environ.setdefault("LIFELINE_DATA_DIR", str(Path("pytest_artifacts").resolve() / "data"))
os.environ.setdefault("LIFELINE_HANDOFF_SECRET", "test-handoff-secret")


@pytest.fixture
def tmp_path() -> Generator[Path, None, None]:
    base = Path("pytest_artifacts")
    base.mkdir(parents=True, exist_ok=True)
    path = base / uuid4().hex
    path.mkdir(parents=True, exist_ok=True)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
