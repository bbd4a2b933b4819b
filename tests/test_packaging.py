from __future__ import annotations

from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

PYPROJECT = Path(__file__).resolve().parents[1] / "pyproject.toml"


@pytest.fixture(scope="module")
def project() -> dict:
    with PYPROJECT.open("rb") as handle:
        return tomllib.load(handle)["project"]


def test_selectolax_stays_below_release_without_parser_backend(project) -> None:
    assert "selectolax>=0.3.17,<1" in project["dependencies"]


def test_project_declares_no_readme(project) -> None:
    assert "readme" not in project
