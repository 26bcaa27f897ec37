"""Tests for the gitignore-style pattern matcher."""

from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from vrepo import ignore
from vrepo.ignore import OutOfScopeError, Pattern


def test_order_sensitivity_last_match_wins() -> None:
    """Verifies a later negation re-includes, and reversing the lines undoes it."""
    assert ignore.build(["*.log", "!important.log"]).is_ignored("important.log") is False
    assert ignore.build(["!important.log", "*.log"]).is_ignored("important.log") is True


def test_directory_exclusion_dominates_negation() -> None:
    """Verifies a file inside an excluded directory cannot be re-included."""
    matcher = ignore.build(["build/", "!build/keep.txt"])
    assert matcher.is_ignored("build/keep.txt") is True
    assert matcher.is_ignored("build/", is_dir=True) is True


def test_contents_pattern_allows_reinclusion() -> None:
    """Verifies `build/*` excludes children only, so negation still applies."""
    matcher = ignore.build(["build/*", "!build/keep.txt"])
    assert matcher.is_ignored("build/keep.txt") is False
    assert matcher.is_ignored("build/other.txt") is True
    assert matcher.is_ignored("build", is_dir=True) is False


def test_anchoring() -> None:
    """Verifies a leading slash restricts matching to the root."""
    assert ignore.build(["/dist"]).is_ignored("sub/dist") is False
    assert ignore.build(["/dist"]).is_ignored("dist") is True
    assert ignore.build(["dist"]).is_ignored("sub/dist") is True


def test_inner_slash_anchors_pattern() -> None:
    """Verifies a slash inside the pattern matches relative to the root only."""
    matcher = ignore.build(["docs/build"])
    assert matcher.is_ignored("docs/build") is True
    assert matcher.is_ignored("src/docs/build") is False


def test_wildcards_and_depth() -> None:
    """Verifies `**` crosses directories and unanchored globs match at any depth."""
    assert ignore.build(["**/*.tmp"]).is_ignored("a/b/c.tmp") is True
    assert ignore.build(["**/*.tmp"]).is_ignored("c.tmp") is True
    assert ignore.build(["*.tmp"]).is_ignored("a/b/c.tmp") is True
    assert ignore.build(["a/*.tmp"]).is_ignored("a/b/c.tmp") is False


def test_double_star_forms() -> None:
    """Verifies trailing and inner `**` segments."""
    trailing = ignore.build(["doc/**"])
    assert trailing.is_ignored("doc/a/b.txt") is True
    assert trailing.is_ignored("doc", is_dir=True) is False

    inner = ignore.build(["a/**/z"])
    assert inner.is_ignored("a/z") is True
    assert inner.is_ignored("a/b/c/z") is True
    assert inner.is_ignored("b/a/z") is False


def test_single_character_and_classes() -> None:
    """Verifies `?`, bracket classes and negated classes."""
    matcher = ignore.build(["file?.txt", "*.py[co]", "[!a]b"])
    assert matcher.is_ignored("file1.txt") is True
    assert matcher.is_ignored("file12.txt") is False
    assert matcher.is_ignored("mod.pyc") is True
    assert matcher.is_ignored("mod.py") is False
    assert matcher.is_ignored("cb") is True
    assert matcher.is_ignored("ab") is False


def test_star_does_not_cross_separator() -> None:
    matcher = ignore.build(["/src/*.o"])
    assert matcher.is_ignored("src/main.o") is True
    assert matcher.is_ignored("src/lib/main.o") is False


def test_directory_only_pattern() -> None:
    """Verifies trailing-slash patterns match directories and their contents."""
    matcher = ignore.build(["cache/"])
    assert matcher.is_ignored("cache") is False
    assert matcher.is_ignored("cache", is_dir=True) is True
    assert matcher.is_ignored("cache/") is True
    assert matcher.is_ignored("deep/cache/data.bin") is True


def test_anchored_directory_pattern() -> None:
    matcher = ignore.build(["/out/"])
    assert matcher.is_ignored("out/x") is True
    assert matcher.is_ignored("sub/out/x") is False


@pytest.mark.parametrize("line", ["", "   ", "# comment", "/", "///"])
def test_non_rules_are_dropped(line: str) -> None:
    """Verifies blank, comment and degenerate lines produce no pattern.

    Args:
        line (str): The ignore-file line under test.
    """
    assert Pattern.parse(line) is None
    assert ignore.build([line]).patterns == ()


def test_lines_are_trimmed_and_flags_recorded() -> None:
    """Verifies the directory flag is kept after the trailing slash is stripped."""
    pattern = Pattern.parse("  !/build//  ")
    assert pattern is not None
    assert pattern.raw == "!/build//"
    assert pattern.body == "build"
    assert pattern.negated is True
    assert pattern.anchored is True
    assert pattern.dir_only is True


def test_escaped_hash_and_bang() -> None:
    matcher = ignore.build(["\\#notes", "\\!bang"])
    assert matcher.is_ignored("#notes") is True
    assert matcher.is_ignored("!bang") is True


def test_malformed_pattern_falls_back_to_literal() -> None:
    """Verifies an unbalanced class degrades to a substring test."""
    pattern = Pattern.parse("[abc")
    assert pattern is not None
    assert pattern.is_literal

    matcher = ignore.build(["[abc"])
    assert matcher.is_ignored("dir/file[abc].txt") is True
    assert matcher.is_ignored("dir/abc.txt") is False


def test_root_and_empty_path_are_never_ignored() -> None:
    matcher = ignore.build(["*"])
    assert matcher.is_ignored("") is False
    assert matcher.is_ignored(".") is False


def test_path_normalization() -> None:
    """Verifies redundant separators and dot segments are normalized."""
    matcher = ignore.build(["/dist"])
    assert matcher.is_ignored("./dist") is True
    assert matcher.is_ignored("sub/../dist") is True


def test_absolute_paths_resolve_against_root(tmp_path: Path) -> None:
    """Verifies absolute queries are made relative to the matcher root.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    matcher = ignore.build(["/dist"], root=tmp_path)
    assert matcher.is_ignored(tmp_path / "dist") is True
    assert matcher.is_ignored(str(tmp_path / "sub" / "dist")) is False


def test_out_of_scope_paths_raise(tmp_path: Path) -> None:
    """Verifies paths outside the root raise OutOfScopeError.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    rooted = ignore.build(["*"], root=tmp_path / "repo")
    with pytest.raises(OutOfScopeError):
        rooted.is_ignored(tmp_path / "elsewhere" / "file")
    with pytest.raises(OutOfScopeError):
        rooted.is_ignored("../file")

    unrooted = ignore.build(["*"])
    with pytest.raises(OutOfScopeError):
        unrooted.is_ignored(tmp_path / "file")

    # Callers may treat the error as a ValueError.
    with pytest.raises(ValueError):
        unrooted.is_ignored("../file")


def test_load_reads_gitignore(tmp_path: Path) -> None:
    """Verifies `load` compiles the root `.gitignore`.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    (tmp_path / ".gitignore").write_text("# build output\n*.log\n\nnode_modules/\n")
    matcher = ignore.load(tmp_path)

    assert len(matcher.patterns) == 2
    assert matcher.root == tmp_path.absolute()
    assert matcher.is_ignored("debug.log") is True
    assert matcher.is_ignored("node_modules/pkg/index.js") is True
    assert matcher.is_ignored("index.js") is False


def test_load_without_gitignore_ignores_nothing(tmp_path: Path) -> None:
    matcher = ignore.load(tmp_path)
    assert matcher.patterns == ()
    assert matcher.is_ignored("anything/at/all.txt") is False


# Strategies: small alphabets keep generated paths colliding with patterns.
_segments = st.text(alphabet="abc.", min_size=1, max_size=4).filter(
    lambda s: s not in (".", "..")
)
_paths = st.lists(_segments, min_size=1, max_size=4).map("/".join)
_lines = st.lists(
    st.sampled_from(
        ["*.a", "!*.a", "a/", "!a/b", "/b", "**/c", "a*", "[ab]c", "[a", "b/**", "#x"]
    ),
    max_size=6,
)


@given(lines=_lines, path=_paths, is_dir=st.booleans())
def test_query_is_deterministic(lines: list[str], path: str, is_dir: bool) -> None:
    """
    Property: Repeated queries on one matcher, and queries on two matchers
    built from the same text, always agree.
    """
    first = ignore.build(lines)
    second = ignore.build(list(lines))

    verdict = first.is_ignored(path, is_dir=is_dir)
    assert first.is_ignored(path, is_dir=is_dir) == verdict
    assert second.is_ignored(path, is_dir=is_dir) == verdict


@given(lines=_lines, parent=_paths, child=_segments)
def test_excluded_directory_is_terminal(
    lines: list[str], parent: str, child: str
) -> None:
    """
    Property: Whatever rules come first, once a directory is excluded every
    path beneath it stays excluded, even against a later negation.
    """
    matcher = ignore.build([*lines, f"/{parent}/", f"!{parent}/{child}"])
    assert matcher.is_ignored(f"{parent}/{child}") is True
    assert matcher.is_ignored(f"{parent}/{child}/{child}") is True


@given(path=_paths)
def test_empty_matcher_ignores_nothing(path: str) -> None:
    assert ignore.build([]).is_ignored(path) is False
