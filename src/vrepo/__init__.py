"""vrepo: Synchronize repositories with git remotes and ssh targets.

This package provides the command-line interface, the repository and remote
configuration, the wrappers around git, rsync and npm, and the gitignore
pattern matcher that filters large-file listings and ssh pushes.
"""

from . import (
    cli,
    config,
    constants,
    git_wrapper,
    ignore,
    npm,
    ops,
    repo,
    scan,
    ssh,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "git_wrapper",
    "ignore",
    "npm",
    "ops",
    "repo",
    "scan",
    "ssh",
]
