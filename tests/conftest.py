import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from interview_coder.api_key_probe import ApiKeyProbe  # noqa: E402
from interview_coder.config_manager import ConfigManager  # noqa: E402
from interview_coder.config_paths import PathResolver  # noqa: E402


@pytest.fixture
def home_dir(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def work_dir(tmp_path):
    work = tmp_path / "work"
    work.mkdir()
    return work


@pytest.fixture
def resolver(home_dir, work_dir):
    return PathResolver(platform="linux", environ={}, home=home_dir, cwd=work_dir)


@pytest.fixture
def canonical_path(resolver):
    return resolver.canonical_path()


@pytest.fixture
def make_manager(resolver):
    def _factory(**kwargs):
        kwargs.setdefault("probe", ApiKeyProbe(timeout=1.0))
        return ConfigManager(resolver, **kwargs)

    return _factory


def write_json(path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))
