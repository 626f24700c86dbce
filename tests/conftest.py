from pathlib import Path
from typing import Dict

import pytest


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "templates"
    directory.mkdir()
    return directory


@pytest.fixture
def write_templates(template_dir: Path):
    def _write(files: Dict[str, str]) -> Path:
        for name, source in files.items():
            path = template_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source, encoding="utf-8")
        return template_dir

    return _write


@pytest.fixture
def anyio_backend():
    return "asyncio"
