import pytest

from pakegui.config import get_settings
from pakegui.projects import ProjectManager


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep settings and projects out of the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    for var in ("PAKEGUI_PROJECTS_DIR", "PAKEGUI_PAKE_BIN", "PAKEGUI_SKIP_MALFORMED_PROJECTS"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def manager(tmp_path) -> ProjectManager:
    return ProjectManager(tmp_path / "projects", skip_malformed=False)
