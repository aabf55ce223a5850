import sys
from pathlib import Path

import pytest


@pytest.fixture
def solver_script(tmp_path: Path):
    """Write an executable Python script standing in for the routing solver."""

    def _write(body: str, name: str = "routing") -> Path:
        script = tmp_path / name
        script.write_text(f"#!{sys.executable}\nimport sys\n{body}\n", encoding="utf-8")
        script.chmod(0o755)
        return script

    return _write
