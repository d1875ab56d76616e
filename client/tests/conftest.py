"""Client test setup: every test gets its own config dir."""

import pytest


@pytest.fixture(autouse=True)
def isolated_config_dir(monkeypatch, tmp_path_factory):
    d = tmp_path_factory.mktemp("sharelink-config")
    monkeypatch.setenv("SHARELINK_CONFIG_DIR", str(d))
    monkeypatch.delenv("SHARELINK_BASE_URL", raising=False)
    return d
