import logging
from collections.abc import Iterable
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import scan
from .config import GitRemote, SSHRemote
from .constants import APP_NAME
from .repo import Repo

console = Console()
logger = logging.getLogger(APP_NAME)


def resolve_sources(
    source: str | None = None, sources: Iterable[str] | None = None
) -> list[Path]:
    """Determines the repository directories a command operates on.

    Args:
        source (str | None): A single source directory.
        sources (Iterable[str] | None): Several source directories.

    Returns:
        list[Path]: `source`, else `sources`, else the current directory.
    """
    if source is not None:
        return [Path(source)]
    if sources:
        return [Path(s) for s in sources]
    return [Path("./")]


def _split_names(names: Iterable[str]) -> list[str]:
    """Flattens repeated and comma-separated remote names."""
    return [n.strip() for item in names for n in item.split(",") if n.strip()]


def select_git_remotes(repo: Repo, names: list[str] | None) -> list[GitRemote]:
    """Picks the git remotes a command targets.

    Args:
        repo (Repo): The repository.
        names (list[str] | None): None for no remotes, an empty list for every
            enabled remote, otherwise the remote names to use.

    Returns:
        list[GitRemote]: The selected remotes, in the requested order.

    Raises:
        ValueError: If a requested remote is not configured.
    """
    if names is None:
        return []
    remotes = repo.config.git.remotes
    if not names:
        return [r for r in remotes if r.enabled]

    selected = []
    for name in _split_names(names):
        matches = [r for r in remotes if r.remote == name]
        if not matches:
            raise ValueError(f'Git remote "{name}" does not exist.')
        selected.extend(matches)
    return selected


def select_ssh_remotes(repo: Repo, aliases: list[str] | None) -> list[SSHRemote]:
    """Picks the ssh remotes a command targets.

    Args:
        repo (Repo): The repository.
        aliases (list[str] | None): None for no remotes, an empty list for
            every enabled remote, otherwise the aliases to use.

    Returns:
        list[SSHRemote]: The selected remotes, in the requested order.

    Raises:
        ValueError: If a requested alias is not configured.
    """
    if aliases is None:
        return []
    remotes = repo.config.ssh.remotes
    if not aliases:
        return [r for r in remotes if r.enabled]

    selected = []
    for alias in _split_names(aliases):
        matches = [r for r in remotes if r.alias == alias]
        if not matches:
            raise ValueError(f'SSH remote "{alias}" does not exist.')
        selected.extend(matches)
    return selected


def push(
    repo: Repo,
    git: list[str] | None = None,
    ssh: list[str] | None = None,
    forced: bool = False,
    delete: bool = False,
    ensure_push: bool = False,
    gitignore: bool = False,
) -> None:
    """Pushes a repository to its git and ssh remotes.

    When neither `git` nor `ssh` is given, every enabled remote of both kinds
    is used.

    Args:
        repo (Repo): The repository to push.
        git (list[str] | None): Git remote selection (see `select_git_remotes`).
        ssh (list[str] | None): Ssh remote selection (see `select_ssh_remotes`).
        forced (bool): Whether to force git pushes.
        delete (bool): Whether rsync deletes remote files missing locally.
        ensure_push (bool): Whether to touch .gitignore to force a commit.
        gitignore (bool): Whether rsync leaves out ignored paths.

    Raises:
        ValueError: If a requested remote is not configured.
        RuntimeError: If a push fails.
    """
    if git is None and ssh is None:
        git, ssh = [], []
    git_remotes = select_git_remotes(repo, git)
    ssh_remotes = select_ssh_remotes(repo, ssh)

    for remote in git_remotes:
        console.print(
            f"[bold blue]PUSHING:[/bold blue] [bold]{repo.name}[/bold] branch "
            f'"{remote.branch}" to "{remote.remote} {remote.destination}" (git).'
        )
        repo.git.push(
            remote.remote,
            remote.destination,
            remote.branch,
            forced=forced,
            ensure_push=ensure_push,
        )

    excludes: list[str] = []
    if ssh_remotes and gitignore:
        excludes = list(scan.iter_ignored(repo.source, repo.matcher))
        logger.debug(f"Excluding {len(excludes)} ignored paths from rsync.")

    for remote in ssh_remotes:
        console.print(
            f"[bold blue]PUSHING:[/bold blue] [bold]{repo.name}[/bold] to "
            f"[bold]{remote.alias}[/bold]:{remote.destination} (ssh)."
        )
        repo.ssh.push(remote.alias, remote.destination, delete=delete, excludes=excludes)


def pull(
    repo: Repo,
    git: str | None = None,
    ssh: str | None = None,
    forced: bool = False,
    delete: bool = False,
) -> None:
    """Pulls a repository from exactly one git or ssh remote.

    Raises:
        ValueError: If both or neither remote kinds are given, if the
            selection names more than one remote, or if a remote is not
            configured.
        RuntimeError: If the pull fails.
    """
    if (git is None) == (ssh is None):
        raise ValueError('Define either parameter "git" or "ssh".')

    if git is not None:
        remotes = select_git_remotes(repo, [git])
    else:
        remotes = select_ssh_remotes(repo, [ssh])
    if len(remotes) != 1:
        raise ValueError(f"Pull from exactly one remote, not {len(remotes)}.")
    remote = remotes[0]

    if git is not None:
        console.print(
            f"[bold blue]PULLING:[/bold blue] [bold]{repo.name}[/bold] branch "
            f'"{remote.branch}" from "{remote.remote}" "{remote.destination}" (git).'
        )
        repo.git.pull(remote.remote, remote.destination, remote.branch, forced=forced)
    else:
        console.print(
            f"[bold blue]PULLING:[/bold blue] [bold]{repo.name}[/bold] from "
            f"[bold]{remote.alias}[/bold]:{remote.destination} (ssh)."
        )
        repo.ssh.pull(remote.alias, remote.destination, delete=delete)


def publish_npm(repo: Repo) -> None:
    """Publishes the repository's npm package and bumps its version."""
    console.print(
        f"[bold blue]PUBLISHING:[/bold blue] npm package "
        f"[bold]{repo.npm.name}@{repo.npm.version}[/bold]."
    )
    repo.npm.publish()


def add_ssh_remote(repo: Repo, spec: str) -> bool:
    """Registers an ssh remote given as `<alias>:<destination>`.

    Args:
        repo (Repo): The repository.
        spec (str): The alias and destination.

    Returns:
        bool: True if the remote was added, False if it already existed.

    Raises:
        ValueError: If `spec` is not formatted like `<alias>:<destination>`.
    """
    alias, sep, destination = spec.partition(":")
    if not sep or not alias or not destination:
        raise ValueError(
            'Invalid value for parameter "ssh", the parameter value must be '
            'formatted like "<alias>:<destination>".'
        )
    remote = SSHRemote(alias=alias, destination=destination)
    console.print(
        f'[bold blue]ADDING:[/bold blue] ssh remote "{alias}:{destination}" '
        f'to "{repo.name}".'
    )
    if any(
        r.alias == remote.alias and r.destination == remote.destination
        for r in repo.config.ssh.remotes
    ):
        console.print("   [dim]Remote already registered.[/dim]")
        return False
    repo.config.ssh.remotes.append(remote)
    repo.save()
    return True


def add_git_remote(repo: Repo, remote: str, destination: str, branch: str) -> bool:
    """Registers a git remote.

    Args:
        repo (Repo): The repository.
        remote (str): The remote name.
        destination (str): The remote url.
        branch (str): The branch pushed to the remote.

    Returns:
        bool: True if the remote was added, False if it already existed.
    """
    item = GitRemote(remote=remote, branch=branch, destination=destination)
    console.print(
        f'[bold blue]ADDING:[/bold blue] git remote "{remote}:{destination}:{branch}" '
        f'to "{repo.name}".'
    )
    if any(
        r.remote == item.remote
        and r.destination == item.destination
        and r.branch == item.branch
        for r in repo.config.git.remotes
    ):
        console.print("   [dim]Remote already registered.[/dim]")
        return False
    repo.config.git.remotes.append(item)
    repo.save()
    return True


def list_remotes(repo: Repo, git_only: bool = False, ssh_only: bool = False) -> None:
    """Prints the configured remotes of a repository.

    Args:
        repo (Repo): The repository.
        git_only (bool): Only show git remotes.
        ssh_only (bool): Only show ssh remotes.
    """
    show_all = not git_only and not ssh_only

    table = Table(title=repo.name, show_header=True, header_style="bold magenta")
    table.add_column("Type")
    table.add_column("Remote", style="cyan")
    table.add_column("Destination")
    table.add_column("Branch", style="dim")
    table.add_column("Status")

    def status(enabled: bool) -> str:
        return "[green]Enabled[/green]" if enabled else "[yellow]Disabled[/yellow]"

    if git_only or show_all:
        for r in repo.config.git.remotes:
            table.add_row("git", r.remote, r.destination, r.branch, status(r.enabled))
    if ssh_only or show_all:
        for r in repo.config.ssh.remotes:
            table.add_row("ssh", r.alias, r.destination, "-", status(r.enabled))

    console.print(table)


def remove_commit_history(repo: Repo) -> None:
    """Squashes the history of the branch of the first git remote with a branch.

    Raises:
        ValueError: If no git remote defines a branch.
        RuntimeError: If a git step fails.
    """
    remote = next((r for r in repo.config.git.remotes if r.branch), None)
    if remote is None:
        raise ValueError(f'No git remote with a branch is defined for "{repo.name}".')
    console.print(
        f"[bold blue]RESETTING:[/bold blue] git commit history of "
        f'[bold]{repo.name}[/bold] (branch "{remote.branch}").'
    )
    repo.git.remove_commit_history(remote.branch)


def remove_git_cache(repo: Repo) -> None:
    """Untracks all files of a repository so .gitignore is re-applied."""
    console.print(
        f"[bold blue]CLEANING:[/bold blue] git cache of [bold]{repo.name}[/bold]."
    )
    repo.git.remove_cache()


def show_large_files(
    repo: Repo,
    exclude: Iterable[str] = (),
    limit: int | None = None,
    gitignore: bool = False,
    directories: bool = False,
) -> list[scan.LargeFile]:
    """Prints the largest entries of a repository.

    Args:
        repo (Repo): The repository.
        exclude (Iterable[str]): Paths to skip, relative to the current
            directory or absolute.
        limit (int | None): Maximum number of entries. Defaults to the
            configured scan limit.
        gitignore (bool): Whether ignored paths are left out.
        directories (bool): Whether directories are listed.

    Returns:
        list[scan.LargeFile]: The entries that were printed.
    """
    if limit is None:
        limit = repo.settings.scan.limit
    entries = scan.list_large_files(
        repo.source,
        exclude=[str(Path(p).absolute()) for p in exclude],
        limit=limit,
        use_gitignore=gitignore,
        include_directories=directories,
        matcher=repo.matcher,
    )

    table = Table(title=repo.name, show_header=True, header_style="bold magenta")
    table.add_column("Path", style="cyan")
    table.add_column("Size", justify="right")
    for entry in entries:
        path = f"{entry.relative}/" if entry.is_dir else entry.relative
        table.add_row(path, scan.format_bytes(entry.size))
    console.print(table)
    return entries
