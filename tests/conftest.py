"""Shared fixtures and helpers for tests."""

from pathlib import Path

import pytest

from tests.components import ADD_WAT, compile_wat
from wasm2openapi.core.extractor import load
from wasm2openapi.models import ComponentInterface

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def add_binary() -> bytes:
    return compile_wat(ADD_WAT)


@pytest.fixture
def add_iface(add_binary: bytes) -> ComponentInterface:
    return load(add_binary)


@pytest.fixture
def add_file(tmp_path: Path, add_binary: bytes) -> Path:
    path = tmp_path / "add.wasm"
    path.write_bytes(add_binary)
    return path
