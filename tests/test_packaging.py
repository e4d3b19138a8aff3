"""
Packaging metadata tests.

Tests cover:
  - pyproject.toml only references files that ship with the source tree
"""
from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(scope="module")
def project():
    with open(ROOT / "pyproject.toml", "rb") as fh:
        return tomllib.load(fh)["project"]


class TestProjectMetadata:
    def test_readme_exists_when_declared(self, project):
        readme = project.get("readme")
        if readme is None:
            return
        path = readme if isinstance(readme, str) else readme.get("file")
        assert path and (ROOT / path).is_file()

    def test_name_and_package(self, project):
        assert project["name"] == "ipflow"
        assert (ROOT / "ipflow" / "__init__.py").is_file()
