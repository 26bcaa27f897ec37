import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path

from . import ignore, scan
from .config import Config, RepoConfig
from .constants import (
    APP_NAME,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_LARGE_FILE_LIMIT,
    GITIGNORE_NAME,
    NPM_CONFIG_NAME,
    README_NAME,
    VERSION_TAG,
)
from .git_wrapper import GitRepo
from .npm import NpmPackage
from .ssh import SSHSync

logger = logging.getLogger(APP_NAME)


class GitSync:
    """Push/pull sequences for one repository and its configured identity.

    Attributes:
        source (Path): The repository directory.
        username (str | None): The commit author name.
        email (str | None): The commit author email.
        matcher (ignore.PatternMatcher): The repository ignore rules.
        commit_message (str): The message used for automatic commits.
        repo (GitRepo): The git command wrapper.
    """

    def __init__(
        self,
        source: Path,
        username: str | None,
        email: str | None,
        matcher: ignore.PatternMatcher,
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
    ):
        self.source = source
        self.username = username
        self.email = email
        self.matcher = matcher
        self.commit_message = commit_message
        self.repo = GitRepo(source)

    def prepare(self, remote: str, destination: str, branch: str) -> None:
        """Ensures the repository, identity, remote and branch are in place.

        Args:
            remote (str): The remote name.
            destination (str): The remote url.
            branch (str): The branch to work on.

        Raises:
            RuntimeError: If the identity is missing or a git step fails.
        """
        remote, destination, branch = remote.strip(), destination.strip(), branch.strip()

        if self.username is None:
            raise RuntimeError("There is no git username defined.")
        if self.email is None:
            raise RuntimeError("There is no git email defined.")

        steps = [
            ("create a git repository", self._ensure_initialized),
            (
                "set the git username and email",
                lambda: self.repo.set_identity(self.username, self.email),
            ),
            ("set the git origin", lambda: self.repo.set_remote(remote, destination)),
            ("set the git branch", lambda: self.repo.checkout(branch)),
        ]
        for description, step in steps:
            try:
                step()
            except RuntimeError as e:
                raise RuntimeError(f"Failed to {description}:\n{e}") from e

    def _ensure_initialized(self) -> None:
        if not self.repo.is_initialized():
            logger.info(f"Initializing git repository in {self.source}")
            self.repo.init()

    def _fill_readme_version(self) -> None:
        """Replaces the version tag in the README with the live npm version."""
        npm_config = self.source / NPM_CONFIG_NAME
        if not npm_config.exists():
            return
        version = json.loads(npm_config.read_text(encoding="utf-8")).get(
            "live_version"
        )
        readme = self.source / README_NAME
        if version and readme.exists():
            text = readme.read_text(encoding="utf-8")
            if VERSION_TAG in text:
                readme.write_text(text.replace(VERSION_TAG, version), encoding="utf-8")

    def _touch_gitignore(self) -> None:
        """Toggles one trailing space in .gitignore so there is always a change."""
        gitignore = self.source / GITIGNORE_NAME
        if not gitignore.exists():
            gitignore.write_text("", encoding="utf-8")
            return
        data = gitignore.read_text(encoding="utf-8")
        data = data[:-1] if data.endswith(" ") else data + " "
        gitignore.write_text(data, encoding="utf-8")

    def push(
        self,
        remote: str,
        destination: str,
        branch: str,
        forced: bool = False,
        ensure_push: bool = False,
    ) -> None:
        """Commits every change and pushes the branch to the remote.

        Args:
            remote (str): The remote name.
            destination (str): The remote url.
            branch (str): The branch to push.
            forced (bool, optional): Whether to force the push.
            ensure_push (bool, optional): Whether to edit .gitignore so that a
                commit is always created.

        Raises:
            RuntimeError: If any git step fails.
        """
        self.prepare(remote, destination, branch)
        self._fill_readme_version()
        if ensure_push:
            self._touch_gitignore()

        try:
            self.repo.add_all()
        except RuntimeError as e:
            raise RuntimeError(f"Failed to add files to the git repository:\n{e}") from e
        try:
            self.repo.commit(self.commit_message)
        except RuntimeError as e:
            raise RuntimeError(f"Failed to commit to the git repository:\n{e}") from e
        try:
            self.repo.push(remote.strip(), branch.strip(), force=forced)
        except RuntimeError as e:
            raise RuntimeError(f"Failed to push the git repository:\n{e}") from e

    def pull(
        self, remote: str, destination: str, branch: str, forced: bool = False
    ) -> None:
        """Pulls the branch from the remote.

        Raises:
            RuntimeError: If any git step fails.
        """
        self.prepare(remote, destination, branch)
        try:
            self.repo.pull(remote.strip(), branch.strip(), force=forced)
        except RuntimeError as e:
            raise RuntimeError(f"Failed to pull the git repository:\n{e}") from e

    def remove_commit_history(self, branch: str) -> None:
        try:
            self.repo.remove_commit_history(branch)
        except RuntimeError as e:
            raise RuntimeError(f"Failed to remove the commit history:\n{e}") from e

    def remove_cache(self) -> None:
        try:
            self.repo.remove_cache()
        except RuntimeError as e:
            raise RuntimeError(f"Failed to remove the git cache:\n{e}") from e

    def list_large_files(
        self,
        exclude: Iterable[str] = (),
        limit: int | None = DEFAULT_LARGE_FILE_LIMIT,
        gitignore: bool = True,
        directories: bool = False,
    ) -> list[scan.LargeFile]:
        """Lists the largest entries of the repository."""
        return scan.list_large_files(
            self.source,
            exclude=exclude,
            limit=limit,
            use_gitignore=gitignore,
            include_directories=directories,
            matcher=self.matcher,
        )


class Repo:
    """A local source directory together with its `.vrepo` configuration.

    The ignore rules are read once, here, and shared by every consumer.

    Attributes:
        source (Path): The absolute repository directory.
        name (str): The directory name.
        config (RepoConfig): The repository configuration.
        matcher (ignore.PatternMatcher): The `.gitignore` rules.
        git (GitSync | None): Git operations, when enabled.
        ssh (SSHSync | None): Rsync operations, when enabled.
        npm (NpmPackage | None): npm operations, when enabled.
    """

    def __init__(
        self,
        source: str | os.PathLike,
        git: bool = True,
        ssh: bool = True,
        npm: bool = True,
        settings: Config | None = None,
    ):
        """Loads the repository configuration and the enabled sub-objects.

        Args:
            source (str | os.PathLike): The repository directory.
            git (bool): Whether git operations are needed.
            ssh (bool): Whether rsync operations are needed.
            npm (bool): Whether npm operations are needed (requires a
                `package.json`).
            settings (Config | None): The tool configuration. Loaded from
                disk when omitted.

        Raises:
            FileNotFoundError: If the directory does not exist, or npm is
                enabled without a `package.json`.
            ConfigError: If `.vrepo` is invalid.
        """
        self.source = Path(os.path.abspath(source))
        if not self.source.is_dir():
            raise FileNotFoundError(f"Source directory {self.source} does not exist.")
        self.name = self.source.name
        self.settings = settings or Config.load()

        self.config = RepoConfig.load(self.source)
        self.matcher = ignore.load(self.source)

        self.git = (
            GitSync(
                self.source,
                self.config.git.username,
                self.config.git.email,
                self.matcher,
                commit_message=self.settings.core.commit_message,
            )
            if git
            else None
        )
        self.ssh = SSHSync(self.source) if ssh else None
        self.npm = (
            NpmPackage(self.source, version_path=self.config.version_path)
            if npm
            else None
        )

    def __repr__(self) -> str:
        return f"Repo({self.source})"

    def is_ignored(self, path: str | os.PathLike) -> bool:
        """Checks a path (absolute or repository-relative) against `.gitignore`."""
        return self.matcher.is_ignored(path)

    def save(self) -> None:
        """Writes `.vrepo` and, when npm is enabled, `package.json`."""
        self.config.save()
        if self.npm is not None:
            self.npm.save()
