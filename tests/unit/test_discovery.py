"""Unit tests for mdspec.discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from mdspec.discovery import case_id, discover, glob_test
from mdspec.errors import DiscoveryError


@pytest.fixture
def doc_tree(tmp_path: Path) -> Path:
    (tmp_path / "specs" / "nested").mkdir(parents=True)
    for name in ["specs/b.md", "specs/a.md", "specs/nested/deep-one.md", "specs/notes.txt"]:
        (tmp_path / name).write_text("# Doc\n")
    return tmp_path


def _marks(func) -> dict[str, object]:
    return {mark.name: mark for mark in getattr(func, "pytestmark", [])}


class TestDiscover:
    def test_recursive_sorted(self, doc_tree: Path) -> None:
        paths = discover("specs/**/*.md", doc_tree)
        assert [p.relative_to(doc_tree).as_posix() for p in paths] == [
            "specs/a.md",
            "specs/b.md",
            "specs/nested/deep-one.md",
        ]

    def test_directories_excluded(self, doc_tree: Path) -> None:
        assert discover("specs/*", doc_tree) == [
            doc_tree / "specs" / "a.md",
            doc_tree / "specs" / "b.md",
            doc_tree / "specs" / "notes.txt",
        ]

    def test_absolute_pattern(self, doc_tree: Path) -> None:
        paths = discover(str(doc_tree / "specs" / "a.md"), Path("/nowhere"))
        assert paths == [doc_tree / "specs" / "a.md"]

    def test_no_match(self, doc_tree: Path) -> None:
        assert discover("missing/*.md", doc_tree) == []


class TestCaseId:
    def test_relative_to_glob_prefix(self, doc_tree: Path) -> None:
        path = doc_tree / "specs" / "nested" / "deep-one.md"
        assert case_id(path, "specs/**/*.md", doc_tree) == "nested_deep_one"

    def test_literal_pattern(self, doc_tree: Path) -> None:
        path = doc_tree / "specs" / "a.md"
        assert case_id(path, "specs/a.md", doc_tree) == "a"


class TestGlobTest:
    def test_parametrizes_path(self, doc_tree: Path) -> None:
        @glob_test("specs/*.md", root=doc_tree)
        def test_doc(path: str) -> None:
            pass

        marks = _marks(test_doc)
        parametrize = marks["parametrize"]
        assert parametrize.args[0] == "path"
        assert parametrize.args[1] == [
            str(doc_tree / "specs" / "a.md"),
            str(doc_tree / "specs" / "b.md"),
        ]
        assert parametrize.kwargs["ids"] == ["a", "b"]
        assert "asyncio" not in marks

    def test_coroutine_marked_asyncio(self, doc_tree: Path) -> None:
        @glob_test("specs/*.md", root=doc_tree)
        async def test_doc(path: str) -> None:
            pass

        assert "asyncio" in _marks(test_doc)

    def test_no_match_raises(self, doc_tree: Path) -> None:
        with pytest.raises(DiscoveryError, match="didn't match any paths"):

            @glob_test("missing/*.md", root=doc_tree)
            def test_doc(path: str) -> None:
                pass

    def test_root_defaults_to_module_directory(self) -> None:
        with pytest.raises(DiscoveryError, match=str(Path(__file__).resolve().parent)):

            @glob_test("no-such-dir/*.md")
            def test_doc(path: str) -> None:
                pass
