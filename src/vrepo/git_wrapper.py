import logging
import os
import subprocess
from pathlib import Path

from .constants import (
    APP_NAME,
    GIT_ENV,
    HISTORY_RESET_MESSAGE,
    HISTORY_TMP_BRANCH,
)

logger = logging.getLogger(APP_NAME)


class GitRepo:
    """A wrapper around the Git command-line interface for a specific directory.

    Every command runs non-interactively: the environment handed to git is
    built per call from the process environment, ``GIT_ENV`` and the
    overrides given at construction time.

    Attributes:
        path (Path): The file system path to the repository root.
        env (dict[str, str]): Extra environment variables for every command.
    """

    def __init__(self, path: Path, env: dict[str, str] | None = None):
        """Initializes the GitRepo instance.

        The directory does not need to be a repository yet; see `init`.

        Args:
            path (Path): The path to the repository root directory.
            env (dict[str, str] | None): Extra environment variables.
        """
        self.path = path
        self.env = dict(env or {})

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        allowed_codes: tuple[int, ...] = (0,),
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional): Whether to capture and return stdout.
                Defaults to True.
            allowed_codes (tuple[int, ...], optional): Exit codes that count as
                success. Defaults to (0,).

        Returns:
            str: The stripped stdout of the command if capture is True,
            otherwise an empty string.

        Raises:
            RuntimeError: If git exits with a code outside ``allowed_codes``.
        """
        logger.debug(f"Executing ($ git {' '.join(args)}) in {self.path}")
        res = subprocess.run(
            ["git", *args],
            cwd=self.path,
            capture_output=capture,
            text=True,
            env={**os.environ, **GIT_ENV, **self.env},
        )
        if capture and res.stdout:
            logger.debug(res.stdout.rstrip())
        if res.returncode not in allowed_codes:
            detail = (res.stderr or "").strip() if capture else ""
            if not detail:
                detail = f"git {args[0]} exited with code {res.returncode}."
            raise RuntimeError(f"Git error: {detail}")
        return res.stdout.strip() if capture else ""

    def is_initialized(self) -> bool:
        """Checks whether the directory already holds a git repository."""
        return (self.path / ".git").exists()

    def init(self) -> None:
        """Creates an empty repository in the directory."""
        self._run(["init"])

    def set_identity(self, username: str, email: str) -> None:
        """Sets the commit author for this repository only.

        Args:
            username (str): The value for `user.name`.
            email (str): The value for `user.email`.
        """
        self._run(["config", "user.email", email])
        self._run(["config", "user.name", username])

    def set_remote(self, remote: str, destination: str) -> None:
        """Points a remote at a url, adding the remote if it does not exist.

        Args:
            remote (str): The remote name (e.g., 'origin').
            destination (str): The remote url.
        """
        try:
            self._run(["remote", "set-url", remote, destination])
        except RuntimeError as e:
            if "No such remote" not in str(e):
                raise
            logger.debug(f"Remote '{remote}' missing; adding it.")
            self._run(["remote", "add", remote, destination])

    def checkout(self, branch: str) -> None:
        """Switches to a branch, creating it when it does not exist yet.

        Args:
            branch (str): The target branch name.
        """
        try:
            self._run(["checkout", branch])
        except RuntimeError as e:
            if f"pathspec '{branch}'" not in str(e):
                raise
            logger.debug(f"Branch '{branch}' missing; creating it.")
            self._run(["checkout", "-b", branch])

    def add_all(self) -> None:
        """Stages all changes, including deletions and untracked files."""
        self._run(["add", "-A"])

    def commit(self, message: str) -> bool:
        """Commits the staged changes.

        Git exits with code 1 when there is nothing to commit; that case is
        not an error.

        Args:
            message (str): The commit message.

        Returns:
            bool: True if a commit was created.
        """
        output = self._run(["commit", "-m", message], allowed_codes=(0, 1))
        if "nothing to commit" in output or "no changes added" in output:
            logger.debug(f"Nothing to commit in {self.path}")
            return False
        return True

    def push(self, remote: str, branch: str, force: bool = False) -> None:
        """Pushes a branch and sets its upstream.

        Args:
            remote (str): The remote name.
            branch (str): The branch to push.
            force (bool, optional): Whether to force the push. Defaults to False.
        """
        cmd = ["push", "-u", remote, branch]
        if force:
            cmd.append("-f")
        self._run(cmd)

    def pull(self, remote: str, branch: str, force: bool = False) -> None:
        """Pulls a branch from a remote.

        Args:
            remote (str): The remote name.
            branch (str): The branch to pull.
            force (bool, optional): Whether to force the pull. Defaults to False.
        """
        cmd = ["pull", remote, branch]
        if force:
            cmd.append("-f")
        self._run(cmd)

    def remove_commit_history(self, branch: str) -> None:
        """Replaces the history of a branch with a single root commit.

        Args:
            branch (str): The branch whose history is squashed.
        """
        for cmd in (
            ["checkout", "--orphan", HISTORY_TMP_BRANCH, "-q"],
            ["add", "-A"],
            ["commit", "-am", HISTORY_RESET_MESSAGE, "-q"],
            ["branch", "-D", branch, "-q"],
            ["branch", "-m", branch],
        ):
            self._run(cmd)

    def remove_cache(self) -> None:
        """Untracks every file so the ignore rules are re-applied on the next add."""
        self._run(["rm", "-r", "--cached", "-q", "."])
