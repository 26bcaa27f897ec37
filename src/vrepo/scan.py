import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from . import ignore
from .constants import APP_NAME, DEFAULT_LARGE_FILE_LIMIT

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class LargeFile:
    """An entry reported by the large-file scan.

    Attributes:
        path (Path): The absolute path of the entry.
        size (int): The size in bytes. For directories, the sum of the sizes
            of all non-excluded files beneath it.
        relative (str): The ``/``-separated path relative to the scan root.
        is_dir (bool): Whether the entry is a directory.
    """

    path: Path
    size: int
    relative: str
    is_dir: bool = False


def format_bytes(size: float) -> str:
    """Formats a byte count for display (e.g., '1.50 MB')."""
    for unit in ("B", "KB", "MB", "GB"):
        if abs(size) < 1024:
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} TB"


def _relative(path: str, root: str) -> str:
    return os.path.relpath(path, root).replace(os.sep, "/")


def _collect(root: str, exclude: frozenset[str]) -> list[LargeFile]:
    """Records every entry beneath ``root``.

    Walks the tree with an explicit stack and sums directory sizes afterwards.

    Args:
        root (str): The absolute scan root.
        exclude (frozenset[str]): Absolute paths to skip (and not descend).

    Returns:
        list[LargeFile]: The files and directories found, in no particular
        order.
    """
    entries: list[LargeFile] = []
    sizes = {root: 0}
    parents: dict[str, str] = {}
    directories: list[str] = []

    stack = [root]
    while stack:
        directory = stack.pop()
        try:
            with os.scandir(directory) as it:
                children = list(it)
        except OSError as e:
            logger.warning(f"Failed to list {directory}: {e}")
            continue

        for entry in children:
            if entry.path in exclude:
                continue
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                size = 0 if is_dir else entry.stat(follow_symlinks=False).st_size
            except OSError as e:
                logger.warning(f"Failed to check size of {entry.path}: {e}")
                continue

            if is_dir:
                sizes[entry.path] = 0
                parents[entry.path] = directory
                directories.append(entry.path)
                stack.append(entry.path)
            else:
                sizes[directory] += size
                entries.append(
                    LargeFile(Path(entry.path), size, _relative(entry.path, root))
                )

    # Children are discovered after their parent, so the reverse order
    # completes every subtree before the directory that holds it.
    for path in reversed(directories):
        sizes[parents[path]] += sizes[path]
        entries.append(LargeFile(Path(path), sizes[path], _relative(path, root), True))
    return entries


def list_large_files(
    root: str | os.PathLike,
    exclude: Iterable[str] = (),
    limit: int | None = DEFAULT_LARGE_FILE_LIMIT,
    use_gitignore: bool = False,
    include_directories: bool = False,
    matcher: ignore.PatternMatcher | None = None,
) -> list[LargeFile]:
    """Lists the largest entries beneath a directory.

    The whole tree is enumerated and sorted before truncation, since the
    ordering is global. Ties in size are broken by relative path.

    Args:
        root (str | os.PathLike): The directory to scan.
        exclude (Iterable[str]): Absolute paths to skip. Excluded directories
            are not descended into.
        limit (int | None): Maximum number of entries to return. None for no
            limit.
        use_gitignore (bool): Whether to drop entries ignored by the rules.
        include_directories (bool): Whether directories are reported too.
        matcher (ignore.PatternMatcher | None): The rules to apply. Defaults to
            the ``.gitignore`` found at ``root``.

    Returns:
        list[LargeFile]: The entries, largest first.
    """
    root_str = os.path.abspath(root)
    excluded = frozenset(os.path.abspath(p) for p in exclude)

    entries = _collect(root_str, excluded)
    if not include_directories:
        entries = [e for e in entries if not e.is_dir]
    entries.sort(key=lambda e: (-e.size, e.relative))

    if use_gitignore and matcher is None:
        matcher = ignore.load(root_str)

    result: list[LargeFile] = []
    if limit is not None and limit <= 0:
        return result
    for entry in entries:
        if use_gitignore and matcher.is_ignored(entry.relative, is_dir=entry.is_dir):
            continue
        result.append(entry)
        if limit is not None and len(result) >= limit:
            break

    logger.debug(
        f"Large-file scan of {root_str}: {len(entries)} entries, "
        f"{len(result)} reported."
    )
    return result


def iter_ignored(
    root: str | os.PathLike, matcher: ignore.PatternMatcher
) -> Iterator[str]:
    """Yields the topmost ignored entries beneath ``root``.

    Ignored directories are yielded with a trailing ``/`` and are not
    descended into. Entries are yielded in sorted, top-down order.

    Args:
        root (str | os.PathLike): The directory to walk.
        matcher (ignore.PatternMatcher): The rules to apply.

    Yields:
        str: ``/``-separated paths relative to ``root``.
    """
    root_str = os.path.abspath(root)
    for dirpath, dirnames, filenames in os.walk(root_str):
        rel_dir = os.path.relpath(dirpath, root_str).replace(os.sep, "/")
        prefix = "" if rel_dir == "." else f"{rel_dir}/"

        kept = []
        for name in sorted(dirnames):
            if matcher.is_ignored(prefix + name, is_dir=True):
                yield f"{prefix}{name}/"
            else:
                kept.append(name)
        dirnames[:] = kept

        for name in sorted(filenames):
            if matcher.is_ignored(prefix + name, is_dir=False):
                yield prefix + name
