import pytest

from scvibe.logging_utils import LOG_DIR_ENV


@pytest.fixture(autouse=True)
def _isolated_log_dir(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path / "logs"))
