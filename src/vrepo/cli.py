import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler

from rich.console import Console

from . import ops
from .config import Config
from .constants import APP_NAME, LOG_FILE, STATE_DIR, VERSION
from .repo import Repo

logger = logging.getLogger(APP_NAME)
console = Console()


def setup_logging(verbose: bool = False, config: Config | None = None) -> None:
    """Configures the application logger.

    Warnings (or everything, when verbose) go to stderr; INFO and above are
    kept in a rotating log file under the state directory.

    Args:
        verbose (bool): Whether to echo debug output, including the output of
            git, rsync and npm.
        config (Config | None): The tool configuration (log size limit).
    """
    config = config or Config.load()
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    logger.handlers.clear()
    logger.setLevel(logging.DEBUG)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    try:
        STATE_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=config.limits.max_log_size,
            backupCount=5,
        )
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")
        return
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def _source_parser() -> argparse.ArgumentParser:
    """Shared --source/--sources options."""
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--source",
        help="Path to the repository (default: the current directory)",
    )
    parent.add_argument(
        "--sources",
        nargs="+",
        metavar="SOURCE",
        help="Paths to several repositories",
    )
    return parent


def build_parser(config: Config) -> argparse.ArgumentParser:
    """Builds the argument parser.

    Args:
        config (Config): The tool configuration, used for defaults.

    Returns:
        argparse.ArgumentParser: The configured parser.
    """
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Synchronize repositories with git and ssh remotes.",
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {VERSION}")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug and command output"
    )

    sources = _source_parser()
    subparsers = parser.add_subparsers(dest="command")

    push_parser = subparsers.add_parser(
        "push", parents=[sources], help="Push to one or multiple remotes"
    )
    push_parser.add_argument(
        "--git",
        nargs="*",
        metavar="REMOTE",
        help="Push to all git remotes, or the listed ones",
    )
    push_parser.add_argument(
        "--ssh",
        nargs="*",
        metavar="ALIAS",
        help="Push to all ssh remotes, or the listed ones",
    )
    push_parser.add_argument(
        "--forced", "-f", action="store_true", help="Push with git in forced mode"
    )
    push_parser.add_argument(
        "--del",
        "-d",
        dest="delete",
        action="store_true",
        help="Push with rsync in delete mode",
    )
    push_parser.add_argument(
        "--ensure-push",
        "-e",
        action="store_true",
        help="Ensure a git push by editing .gitignore",
    )
    push_parser.add_argument(
        "--gitignore",
        "-g",
        action="store_true",
        help="Leave ignored paths out of ssh pushes",
    )

    pull_parser = subparsers.add_parser(
        "pull", parents=[sources], help="Pull from one of the remotes"
    )
    pull_parser.add_argument("--git", metavar="REMOTE", help="Pull from a git remote")
    pull_parser.add_argument("--ssh", metavar="ALIAS", help="Pull from an ssh remote")
    pull_parser.add_argument(
        "--forced", "-f", action="store_true", help="Pull with git in forced mode"
    )
    pull_parser.add_argument(
        "--del",
        "-d",
        dest="delete",
        action="store_true",
        help="Pull with rsync in delete mode",
    )

    subparsers.add_parser(
        "publish-npm", parents=[sources], help="Publish an npm package"
    )

    add_parser = subparsers.add_parser("add-remote", help="Add a remote")
    add_parser.add_argument(
        "--source",
        help="Path to the repository (default: the current directory)",
    )
    add_parser.add_argument(
        "--ssh", metavar="ALIAS:DESTINATION", help="Add an ssh remote"
    )
    add_parser.add_argument("--git", action="store_true", help="Add a git remote")
    add_parser.add_argument(
        "--remote",
        default=config.core.default_remote,
        help=f"The git remote name (default: {config.core.default_remote})",
    )
    add_parser.add_argument("--destination", help="The git remote url")
    add_parser.add_argument(
        "--branch",
        default=config.core.default_branch,
        help=f"The git branch (default: {config.core.default_branch})",
    )

    remotes_parser = subparsers.add_parser(
        "remotes", parents=[sources], help="Show the registered remotes"
    )
    remotes_parser.add_argument(
        "--git", action="store_true", help="Only show the git remotes"
    )
    remotes_parser.add_argument(
        "--ssh", action="store_true", help="Only show the ssh remotes"
    )

    subparsers.add_parser(
        "remove-commit-history", parents=[sources], help="Remove the commit history"
    )
    subparsers.add_parser(
        "remove-git-cache", parents=[sources], help="Remove the git cache"
    )

    large_parser = subparsers.add_parser(
        "list-large-files",
        parents=[sources],
        help="List large files, optionally filtered by .gitignore",
    )
    large_parser.add_argument(
        "--exclude", nargs="*", default=[], metavar="PATH", help="Paths to skip"
    )
    large_parser.add_argument(
        "--limit",
        type=int,
        default=config.scan.limit,
        help=f"Maximum number of entries (default: {config.scan.limit})",
    )
    large_parser.add_argument(
        "--gitignore",
        "-g",
        action=argparse.BooleanOptionalAction,
        default=config.scan.gitignore,
        help="Enable the .gitignore filter",
    )
    large_parser.add_argument(
        "--directories",
        "-d",
        action=argparse.BooleanOptionalAction,
        default=config.scan.directories,
        help="Also list directories",
    )

    subparsers.add_parser("help", help="Show this help message")
    return parser


def run_command(args: argparse.Namespace, config: Config) -> None:
    """Dispatches a parsed command over its source directories.

    Raises:
        ValueError: For invalid arguments or configuration.
        RuntimeError: If an external command fails.
    """
    if args.command == "add-remote":
        repo = Repo(args.source or "./", npm=False, settings=config)
        if args.ssh is not None:
            ops.add_ssh_remote(repo, args.ssh)
        elif args.git:
            if args.destination is None:
                raise ValueError('Define parameter "--destination" (string).')
            ops.add_git_remote(repo, args.remote, args.destination, args.branch)
        else:
            raise ValueError('Define either parameter "git" or "ssh".')
        return

    if args.command == "pull" and (args.git is None) == (args.ssh is None):
        raise ValueError('Define either parameter "git" or "ssh".')

    for source in ops.resolve_sources(args.source, args.sources):
        if args.command == "publish-npm":
            repo = Repo(source, git=False, ssh=False, settings=config)
            ops.publish_npm(repo)
            continue

        repo = Repo(source, npm=False, settings=config)
        if args.command == "push":
            ops.push(
                repo,
                git=args.git,
                ssh=args.ssh,
                forced=args.forced,
                delete=args.delete,
                ensure_push=args.ensure_push,
                gitignore=args.gitignore,
            )
        elif args.command == "pull":
            ops.pull(
                repo, git=args.git, ssh=args.ssh, forced=args.forced, delete=args.delete
            )
        elif args.command == "remotes":
            ops.list_remotes(repo, git_only=args.git, ssh_only=args.ssh)
        elif args.command == "remove-commit-history":
            ops.remove_commit_history(repo)
        elif args.command == "remove-git-cache":
            ops.remove_git_cache(repo)
        elif args.command == "list-large-files":
            ops.show_large_files(
                repo,
                exclude=args.exclude,
                limit=args.limit,
                gitignore=args.gitignore,
                directories=args.directories,
            )


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the vrepo CLI."""
    config = Config.load()
    parser = build_parser(config)
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return

    setup_logging(args.verbose, config)

    try:
        run_command(args, config)
    except (RuntimeError, ValueError, OSError) as e:
        logger.debug(f"Command '{args.command}' failed", exc_info=True)
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    console.print("[bold green]✔ Done.[/bold green]")


if __name__ == "__main__":
    main()
