"""Tests for the large-file scan."""

import sys
from pathlib import Path

import pytest

from vrepo import ignore, scan


def _write(root: Path, rel: str, size: int) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    return path


def test_largest_first_with_lexical_tie_break(tmp_path: Path) -> None:
    """Verifies the two largest files are reported, ties ordered by path.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    _write(tmp_path, "c", 100)
    _write(tmp_path, "b", 50)
    _write(tmp_path, "a", 100)

    result = scan.list_large_files(tmp_path, limit=2)

    assert [(e.relative, e.size) for e in result] == [("a", 100), ("c", 100)]
    assert result[0].path == tmp_path / "a"
    assert not result[0].is_dir


@pytest.mark.parametrize(("limit", "expected"), [(None, 3), (0, 0), (-1, 0), (10, 3)])
def test_limit_bounds(tmp_path: Path, limit: int | None, expected: int) -> None:
    """Verifies None is unlimited and non-positive limits report nothing.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        limit (int | None): The requested limit.
        expected (int): The number of entries expected.
    """
    for name, size in (("a", 1), ("b", 2), ("c", 3)):
        _write(tmp_path, name, size)

    assert len(scan.list_large_files(tmp_path, limit=limit)) == expected


def test_gitignore_filter(tmp_path: Path) -> None:
    """Verifies ignored entries are dropped and do not count toward the limit."""
    (tmp_path / ".gitignore").write_text("*.bin\nvendor/\n")
    _write(tmp_path, "big.bin", 1000)
    _write(tmp_path, "vendor/lib.js", 900)
    _write(tmp_path, "small.txt", 100)

    unfiltered = scan.list_large_files(tmp_path, limit=1)
    assert unfiltered[0].relative == "big.bin"

    filtered = scan.list_large_files(tmp_path, limit=1, use_gitignore=True)
    assert [e.relative for e in filtered] == ["small.txt"]


def test_explicit_matcher_is_used(tmp_path: Path) -> None:
    """Verifies a supplied matcher takes precedence over the root `.gitignore`."""
    (tmp_path / ".gitignore").write_text("*.txt\n")
    _write(tmp_path, "keep.txt", 20)
    _write(tmp_path, "drop.dat", 30)

    matcher = ignore.build(["*.dat"], root=tmp_path)
    result = scan.list_large_files(
        tmp_path, limit=None, use_gitignore=True, matcher=matcher
    )

    relatives = [e.relative for e in result]
    assert "keep.txt" in relatives
    assert "drop.dat" not in relatives


def test_directories_report_aggregate_size(tmp_path: Path) -> None:
    """Verifies directories are listed with the total size of their files."""
    _write(tmp_path, "d/x", 30)
    _write(tmp_path, "d/sub/y", 20)
    _write(tmp_path, "top", 40)

    result = scan.list_large_files(tmp_path, limit=None, include_directories=True)

    assert [(e.relative, e.size, e.is_dir) for e in result] == [
        ("d", 50, True),
        ("top", 40, False),
        ("d/x", 30, False),
        ("d/sub", 20, True),
        ("d/sub/y", 20, False),
    ]


def test_deeply_nested_tree(tmp_path: Path) -> None:
    """Verifies nesting deeper than the recursion limit is scanned.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    chain = [tmp_path / "d"]
    for _ in range(sys.getrecursionlimit() + 200):
        chain.append(chain[-1] / "d")
    for directory in chain:
        directory.mkdir()
    leaf = chain[-1] / "f"
    leaf.write_bytes(b"x" * 7)

    try:
        result = scan.list_large_files(tmp_path, limit=3, include_directories=True)
    finally:
        # Too deep for the recursive tmp_path cleanup.
        leaf.unlink()
        for directory in reversed(chain):
            directory.rmdir()

    assert [(e.relative, e.size) for e in result] == [
        ("d", 7),
        ("d/d", 7),
        ("d/d/d", 7),
    ]


def test_files_only_by_default(tmp_path: Path) -> None:
    _write(tmp_path, "d/x", 30)
    result = scan.list_large_files(tmp_path, limit=None)
    assert [e.relative for e in result] == ["d/x"]


def test_excluded_paths_are_skipped(tmp_path: Path) -> None:
    """Verifies excluded directories are neither listed nor descended into."""
    _write(tmp_path, "d/x", 30)
    _write(tmp_path, "e/y", 20)
    _write(tmp_path, "top", 10)

    result = scan.list_large_files(
        tmp_path,
        exclude=[str(tmp_path / "d"), str(tmp_path / "top")],
        limit=None,
        include_directories=True,
    )

    assert [e.relative for e in result] == ["e", "e/y"]


def test_ignored_directory_hides_contents(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("build/\n")
    _write(tmp_path, "build/out.o", 500)
    _write(tmp_path, "src/main.c", 5)

    result = scan.list_large_files(
        tmp_path, limit=None, use_gitignore=True, include_directories=True
    )

    relatives = [e.relative for e in result]
    assert "build" not in relatives
    assert "build/out.o" not in relatives
    assert "src/main.c" in relatives


def test_iter_ignored_prunes_directories(tmp_path: Path) -> None:
    """Verifies only the topmost ignored entries are yielded, in walk order."""
    _write(tmp_path, "build/a.o", 1)
    _write(tmp_path, "build/sub/b.o", 1)
    _write(tmp_path, "src/main.c", 1)
    _write(tmp_path, "src/main.o", 1)
    _write(tmp_path, "notes.txt", 1)
    matcher = ignore.build(["build/", "*.o"], root=tmp_path)

    assert list(scan.iter_ignored(tmp_path, matcher)) == ["build/", "src/main.o"]


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (0, "0 B"),
        (512, "512 B"),
        (1536, "1.50 KB"),
        (5 * 1024**2, "5.00 MB"),
        (3 * 1024**3, "3.00 GB"),
        (2 * 1024**4, "2.00 TB"),
    ],
)
def test_format_bytes(size: int, expected: str) -> None:
    assert scan.format_bytes(size) == expected
