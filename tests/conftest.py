from __future__ import annotations

import pytest


AOCC_ENV_VARS = ("AOCC_CATALOG_PATH", "AOCC_CATALOG_STRICT", "AOCC_INITIAL_MODES")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark everything under tests/integration as `integration`, so `-m 'not integration'` works."""
    for item in items:
        if "tests/integration" in str(getattr(item, "path", "")):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def _isolated_aocc_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Operator environment must not leak into settings or catalog loading."""
    for name in AOCC_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
