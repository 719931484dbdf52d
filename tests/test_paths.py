"""Tests for path normalization helpers."""

from __future__ import annotations

import pytest

from cloudpick.paths import (
    clean_leaf,
    extension_of,
    file_type,
    normalize,
    restore_leaf,
    split_path,
)


@pytest.mark.parametrize(
    "ancestors, leaf, expected",
    [
        ([], "readme.txt", ("/readme.txt", "/")),
        (["docs"], "report.pdf", ("/docs/report.pdf", "/docs")),
        (["docs", "photos"], "a.jpg", ("/docs/photos/a.jpg", "/docs/photos")),
        (["", None, "docs", ""], "report.pdf", ("/docs/report.pdf", "/docs")),
        (["/docs/", "//photos"], "/a.jpg", ("/docs/photos/a.jpg", "/docs/photos")),
        (["a//b"], "c", ("/a/b/c", "/a/b")),
    ],
)
def test_normalize_builds_canonical_paths(ancestors, leaf, expected) -> None:
    assert normalize(ancestors, leaf) == expected


def test_normalize_never_emits_double_or_trailing_separators() -> None:
    samples = [
        ([], "x"),
        (["/"], "x"),
        (["a", "/", "b/"], "x.y"),
        (["", "", ""], "file"),
    ]
    for ancestors, leaf in samples:
        full_path, folder_path = normalize(ancestors, leaf)
        assert "//" not in full_path
        assert not full_path.endswith("/")
        assert full_path.startswith("/")
        expected = "/" + leaf if folder_path == "/" else f"{folder_path}/{leaf}"
        assert full_path == expected


def test_normalize_empty_input_yields_empty_path() -> None:
    assert normalize([], "") == ("", "/")
    assert normalize([None, ""], None) == ("", "/")


def test_separators_inside_a_leaf_are_substituted() -> None:
    assert clean_leaf("/Q1//Q2 report.pdf/") == "Q1\u2215Q2 report.pdf"
    assert normalize(["docs"], "Q1/Q2.pdf") == ("/docs/Q1\u2215Q2.pdf", "/docs")
    assert restore_leaf(clean_leaf("Q1/Q2.pdf")) == "Q1/Q2.pdf"


def test_split_path() -> None:
    assert split_path("/docs/photos/a.jpg") == (["docs", "photos"], "a.jpg")
    assert split_path("readme.txt") == ([], "readme.txt")
    assert split_path("/") == ([], "")


@pytest.mark.parametrize(
    "name, expected",
    [
        ("report.PDF", "pdf"),
        ("archive.tar.gz", "gz"),
        ("Makefile", ""),
        (".bashrc", "bashrc"),
        ("trailing.", ""),
    ],
)
def test_extension_of(name: str, expected: str) -> None:
    assert extension_of(name) == expected


def test_file_type_categories() -> None:
    assert file_type("jpg") == "image"
    assert file_type("MKV") == "video"
    assert file_type("flac") == "audio"
    assert file_type("md") == "document"
    assert file_type("zip") == "file"
    assert file_type("") == "file"
