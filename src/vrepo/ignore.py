"""Gitignore-style path exclusion.

A ``PatternMatcher`` is compiled once from the lines of a ``.gitignore`` file
and answers a single question: is this repository-relative path excluded?
It is used by the large-file scan and by the rsync push to skip ignored
entries.

The evaluation follows git: every pattern is replayed in file order and the
last matching pattern wins, a ``!`` pattern re-includes a previously excluded
path, and once a directory is excluded nothing beneath it can be re-included.
"""

import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, GITIGNORE_NAME

logger = logging.getLogger(APP_NAME)


class OutOfScopeError(ValueError):
    """Raised when a queried path does not lie beneath the matcher root."""


class _MalformedPattern(ValueError):
    """Internal signal for pattern text that cannot be compiled as a glob."""


def _translate_class(segment: str, start: int) -> tuple[str, int]:
    """Translates a ``[...]`` character class beginning after ``start``.

    Args:
        segment (str): The pattern segment being translated.
        start (int): The index just past the opening bracket.

    Returns:
        tuple[str, int]: The regex class and the index after the closing bracket.

    Raises:
        _MalformedPattern: If the class is never closed.
    """
    end = start
    if end < len(segment) and segment[end] in "!^":
        end += 1
    if end < len(segment) and segment[end] == "]":
        end += 1
    while end < len(segment) and segment[end] != "]":
        end += 1
    if end >= len(segment):
        raise _MalformedPattern(f"Unbalanced character class in '{segment}'")

    body = segment[start:end]
    negate = body[:1] in ("!", "^")
    if negate:
        body = body[1:]
    body = "".join(f"\\{ch}" if ch in "\\[]^" else ch for ch in body)
    # A negated class must never match the separator.
    return (f"[^/{body}]" if negate else f"[{body}]"), end + 1


def _translate_segment(segment: str) -> str:
    """Translates one slash-free glob segment into a regex fragment."""
    parts = []
    index = 0
    while index < len(segment):
        ch = segment[index]
        index += 1
        if ch == "*":
            # Runs of stars inside a segment behave like a single star.
            while index < len(segment) and segment[index] == "*":
                index += 1
            parts.append("[^/]*")
        elif ch == "?":
            parts.append("[^/]")
        elif ch == "[":
            fragment, index = _translate_class(segment, index)
            parts.append(fragment)
        elif ch == "\\":
            if index >= len(segment):
                raise _MalformedPattern(f"Dangling escape in '{segment}'")
            parts.append(re.escape(segment[index]))
            index += 1
        else:
            parts.append(re.escape(ch))
    return "".join(parts)


def translate(body: str) -> str:
    """Translates a normalized pattern body into a full-match regex.

    ``**`` as a whole segment spans zero or more directories; a trailing
    ``/**`` matches everything beneath the prefix.

    Args:
        body (str): The pattern without negation, anchors or trailing slashes.

    Returns:
        str: A regular expression to be used with ``re.fullmatch``.

    Raises:
        _MalformedPattern: If the glob syntax is unbalanced.
    """
    segments = body.split("/")
    last = len(segments) - 1
    regex = []
    for index, segment in enumerate(segments):
        if segment == "**":
            regex.append(".+" if index == last else "(?:[^/]*/)*")
            continue
        regex.append(_translate_segment(segment))
        if index != last:
            regex.append("/")
    return "".join(regex)


@dataclass(frozen=True)
class Pattern:
    """A single compiled ignore rule.

    Attributes:
        raw (str): The trimmed source line.
        body (str): The glob left after stripping ``!`` and slashes.
        negated (bool): Whether the rule re-includes matches (``!`` prefix).
        anchored (bool): Whether the rule matches the full relative path
            (leading or inner ``/``) rather than the last segment.
        dir_only (bool): Whether the rule only matches directories
            (trailing ``/``).
        regex (re.Pattern[str] | None): The compiled glob, or None when the
            rule fell back to a literal substring test.
    """

    raw: str
    body: str
    negated: bool = False
    anchored: bool = False
    dir_only: bool = False
    regex: re.Pattern[str] | None = None

    @property
    def is_literal(self) -> bool:
        """True when the glob was malformed and is matched as plain text."""
        return self.regex is None

    @classmethod
    def parse(cls, line: str) -> "Pattern | None":
        """Parses one line of ignore-file text.

        Args:
            line (str): A raw line from the ignore source.

        Returns:
            Pattern | None: The compiled rule, or None for blank lines,
            comments and degenerate patterns.
        """
        raw = line.strip()
        if not raw or raw.startswith("#"):
            return None

        text = raw
        negated = False
        if text.startswith("!"):
            negated = True
            text = text[1:]
        elif text.startswith(("\\#", "\\!")):
            text = text[1:]

        # The directory flag is taken before the slashes are stripped.
        dir_only = text.endswith("/")
        text = text.rstrip("/")
        if not text:
            return None

        anchored = text.startswith("/")
        text = re.sub(r"/+", "/", text.lstrip("/"))
        anchored = anchored or "/" in text

        try:
            regex = re.compile(translate(text))
        except (_MalformedPattern, re.error) as e:
            logger.debug(f"Ignore pattern '{raw}' matched literally: {e}")
            regex = None

        return cls(
            raw=raw,
            body=text,
            negated=negated,
            anchored=anchored,
            dir_only=dir_only,
            regex=regex,
        )

    def matches(self, path: str, is_dir: bool = False) -> bool:
        """Tests the rule against a single normalized relative path.

        Ancestors are not considered here; the matcher walks them itself.

        Args:
            path (str): A ``/``-separated path relative to the root.
            is_dir (bool): Whether the path names a directory.

        Returns:
            bool: True if the rule matches the path.
        """
        if self.dir_only and not is_dir:
            return False
        if self.regex is None:
            return self.body in path
        if self.anchored:
            return self.regex.fullmatch(path) is not None
        return self.regex.fullmatch(path.rsplit("/", 1)[-1]) is not None


def parse_patterns(lines: Iterable[str]) -> tuple[Pattern, ...]:
    """Compiles ignore-file lines in order, dropping non-rules."""
    patterns = []
    for line in lines:
        pattern = Pattern.parse(line)
        if pattern is not None:
            patterns.append(pattern)
    return tuple(patterns)


class PatternMatcher:
    """An immutable, ordered set of ignore rules bound to an optional root.

    Attributes:
        patterns (tuple[Pattern, ...]): The rules in file order.
        root (Path | None): The absolute directory the rules are relative to.
            Required to query absolute paths.
    """

    def __init__(
        self, patterns: Iterable[Pattern] = (), root: str | os.PathLike | None = None
    ):
        self.patterns: tuple[Pattern, ...] = tuple(patterns)
        self.root = Path(os.path.abspath(root)) if root is not None else None
        # Memoizes ancestor-directory verdicts; the rules never change.
        self._dir_cache: dict[str, bool] = {}

    def __repr__(self) -> str:
        return f"PatternMatcher(patterns={len(self.patterns)}, root={self.root})"

    def relative(self, path: str | os.PathLike) -> str:
        """Normalizes a query path to a ``/``-separated root-relative form.

        Args:
            path (str | os.PathLike): An absolute path (requires a root) or a
                path relative to the root.

        Returns:
            str: The normalized path, ``""`` for the root itself.

        Raises:
            OutOfScopeError: If the path lies outside the root.
        """
        raw = os.fspath(path)
        if os.path.isabs(raw):
            if self.root is None:
                raise OutOfScopeError(
                    f"Cannot resolve absolute path '{raw}' without a matcher root."
                )
            try:
                rel = os.path.relpath(os.path.normpath(raw), self.root)
            except ValueError as e:
                raise OutOfScopeError(f"Path '{raw}' is outside {self.root}") from e
        else:
            rel = os.path.normpath(raw)

        rel = rel.replace(os.sep, "/")
        if rel == ".":
            return ""
        if rel == ".." or rel.startswith("../"):
            raise OutOfScopeError(f"Path '{raw}' is outside {self.root or 'the root'}")
        return rel

    def is_ignored(self, path: str | os.PathLike, is_dir: bool | None = None) -> bool:
        """Decides whether a path is excluded by the rules.

        Args:
            path (str | os.PathLike): The path to test, absolute or relative to
                the root.
            is_dir (bool | None): Whether the path is a directory. When None,
                a trailing separator on ``path`` marks a directory.

        Returns:
            bool: True if the path is ignored.

        Raises:
            OutOfScopeError: If the path lies outside the root.
        """
        if is_dir is None:
            raw = os.fspath(path)
            is_dir = raw.endswith("/") or raw.endswith(os.sep)

        rel = self.relative(path)
        if not rel:
            return False

        # An excluded ancestor is terminal: later negations cannot reach in.
        parts = rel.split("/")
        for depth in range(1, len(parts)):
            if self._directory_ignored("/".join(parts[:depth])):
                return True
        return self._evaluate(rel, is_dir)

    def _directory_ignored(self, rel: str) -> bool:
        verdict = self._dir_cache.get(rel)
        if verdict is None:
            verdict = self._dir_cache[rel] = self._evaluate(rel, True)
        return verdict

    def _evaluate(self, rel: str, is_dir: bool) -> bool:
        """Replays every rule in order against one path; the last match wins."""
        ignored = False
        for pattern in self.patterns:
            # Only a rule of the opposite polarity can flip the verdict.
            if pattern.negated == ignored and pattern.matches(rel, is_dir):
                ignored = not ignored
        return ignored


def build(
    pattern_lines: Iterable[str], root: str | os.PathLike | None = None
) -> PatternMatcher:
    """Compiles ignore-file lines into a matcher.

    Args:
        pattern_lines (Iterable[str]): The ignore source, one rule per line.
        root (str | os.PathLike | None): The directory the rules apply to.

    Returns:
        PatternMatcher: The compiled matcher.
    """
    return PatternMatcher(parse_patterns(pattern_lines), root=root)


def load(root: str | os.PathLike) -> PatternMatcher:
    """Builds the matcher for a repository from its ``.gitignore``.

    A missing ignore file yields a matcher that ignores nothing.

    Args:
        root (str | os.PathLike): The repository root.

    Returns:
        PatternMatcher: The compiled matcher bound to ``root``.
    """
    gitignore = Path(root) / GITIGNORE_NAME
    if not gitignore.exists():
        logger.debug(f"No {GITIGNORE_NAME} in {root}; nothing is ignored.")
        return PatternMatcher(root=root)

    lines = gitignore.read_text(encoding="utf-8", errors="replace").splitlines()
    matcher = build(lines, root=root)
    logger.debug(f"Loaded {len(matcher.patterns)} ignore patterns from {gitignore}")
    return matcher
