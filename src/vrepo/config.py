import json
import logging
import re
import tomllib
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_LARGE_FILE_LIMIT,
    REPO_CONFIG_NAME,
    VERSION_EXPORT_NAME,
)

logger = logging.getLogger(APP_NAME)


class ConfigError(ValueError):
    """Raised when a repository configuration file cannot be used."""


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        default_remote (str): The git remote name used by `add-remote --git`.
        default_branch (str): The git branch used by `add-remote --git`.
        commit_message (str): The message of the commit created on push.
    """

    default_remote: str = "origin"
    default_branch: str = "main"
    commit_message: str = DEFAULT_COMMIT_MESSAGE


@dataclass
class ScanConfig:
    """Defaults for the large-file scan.

    Attributes:
        limit (int): Maximum number of entries listed.
        gitignore (bool): Whether the .gitignore filter is on by default.
        directories (bool): Whether directories are listed by default.
    """

    limit: int = DEFAULT_LARGE_FILE_LIMIT
    gitignore: bool = False
    directories: bool = False


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for the log file before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        scan (ScanConfig): Large-file scan defaults.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    # Cache for the global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls) -> "Config":
        """Loads the global configuration, merging it over the defaults.

        Returns:
            Config: A copy of the cached configuration object.
        """
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        return replace(cls._global_cache)

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "scan" in data:
                self.scan = self._update_dataclass("scan", self.scan, data["scan"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and bad values."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "limit":
                    if isinstance(v, bool) or not isinstance(v, int):
                        raise ValueError(f"Expected an integer, got '{v}'")
                    filtered_updates[k] = v
                elif isinstance(getattr(instance, k), bool):
                    if not isinstance(v, bool):
                        raise ValueError(f"Expected a boolean, got '{v}'")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = str(v)
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


# --- Per-repository configuration (.vrepo) ---


@dataclass
class SSHRemote:
    """An rsync destination reachable through an ssh alias.

    Attributes:
        alias (str): The ssh host alias.
        destination (str): The directory on the remote host.
        enabled (bool): Whether the remote takes part in "all remotes" pushes.
    """

    alias: str
    destination: str
    enabled: bool = True


@dataclass
class GitRemote:
    """A git remote, its url and the branch pushed to it.

    Attributes:
        remote (str): The git remote name (e.g., 'origin').
        branch (str): The branch to push and pull.
        destination (str): The remote url.
        enabled (bool): Whether the remote takes part in "all remotes" pushes.
    """

    remote: str
    branch: str
    destination: str
    enabled: bool = True


@dataclass
class SSHSettings:
    remotes: list[SSHRemote] = field(default_factory=list)


@dataclass
class GitSettings:
    """Git identity and remotes.

    Attributes:
        username (str | None): The commit author name.
        email (str | None): The commit author email.
        remotes (list[GitRemote]): The configured remotes.
    """

    username: str | None = None
    email: str | None = None
    remotes: list[GitRemote] = field(default_factory=list)


def _check_keys(section: str, data: Any, valid: set[str], path: Path) -> dict:
    if not isinstance(data, dict):
        raise ConfigError(
            f"{path}: Invalid vrepo configuration file. "
            f"Attribute '{section}' must be an object."
        )
    unknown = set(data) - valid
    if unknown:
        logger.warning(
            f"{path}: Unknown keys in '{section}': {', '.join(sorted(unknown))}. "
            "Ignoring."
        )
    return data


def _remote_from_dict(cls: type, section: str, data: Any, path: Path) -> Any:
    """Builds a remote dataclass, enforcing string fields and the enabled flag."""
    names = [f for f in cls.__dataclass_fields__ if f != "enabled"]
    data = _check_keys(section, data, {*names, "enabled"}, path)
    values = {}
    for name in names:
        value = data.get(name)
        if not isinstance(value, str):
            raise ConfigError(
                f"{path}: Invalid vrepo configuration file. "
                f"Attribute '{section}.{name}' must be a string."
            )
        values[name] = value
    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError(
            f"{path}: Invalid vrepo configuration file. "
            f"Attribute '{section}.enabled' must be a boolean."
        )
    return cls(**values, enabled=enabled)


@dataclass
class RepoConfig:
    """The contents of a repository's ``.vrepo`` file.

    Attributes:
        path (Path): The location of the configuration file.
        ssh (SSHSettings): Rsync destinations.
        git (GitSettings): Git identity and remotes.
        version_path (Path): Where `publish-npm` exports the package version.
    """

    path: Path
    ssh: SSHSettings = field(default_factory=SSHSettings)
    git: GitSettings = field(default_factory=GitSettings)
    version_path: Path | None = None

    def __post_init__(self) -> None:
        if self.version_path is None:
            self.version_path = self.path.parent / VERSION_EXPORT_NAME

    @classmethod
    def load(cls, source: Path) -> "RepoConfig":
        """Loads ``<source>/.vrepo``, creating a default file when missing.

        Args:
            source (Path): The repository directory.

        Returns:
            RepoConfig: The validated configuration.

        Raises:
            ConfigError: If the file is not valid JSON or fails validation.
        """
        path = source / REPO_CONFIG_NAME
        if not path.exists():
            logger.info(f"Creating default configuration {path}")
            instance = cls(path=path)
            instance.save()
            return instance

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path}: {e}") from e
        return cls.from_dict(path, data)

    @classmethod
    def from_dict(cls, path: Path, data: Any) -> "RepoConfig":
        """Validates decoded ``.vrepo`` data.

        Args:
            path (Path): The configuration file the data came from.
            data (Any): The decoded JSON document.

        Returns:
            RepoConfig: The validated configuration.
        """
        data = _check_keys("<root>", data, {"ssh", "git", "version_path"}, path)

        ssh_data = _check_keys("ssh", data.get("ssh", {}), {"remotes"}, path)
        ssh = SSHSettings(
            remotes=[
                _remote_from_dict(SSHRemote, "ssh.remotes", item, path)
                for item in _list_of(ssh_data.get("remotes", []), "ssh.remotes", path)
            ]
        )

        git_data = _check_keys(
            "git", data.get("git", {}), {"username", "email", "remotes"}, path
        )
        for key in ("username", "email"):
            if git_data.get(key) is not None and not isinstance(git_data[key], str):
                raise ConfigError(
                    f"{path}: Invalid vrepo configuration file. "
                    f"Attribute 'git.{key}' must be a string."
                )
        git = GitSettings(
            username=git_data.get("username"),
            email=git_data.get("email"),
            remotes=[
                _remote_from_dict(GitRemote, "git.remotes", item, path)
                for item in _list_of(git_data.get("remotes", []), "git.remotes", path)
            ],
        )

        version_path = None
        raw_version = data.get("version_path")
        if raw_version is not None:
            if not isinstance(raw_version, str):
                raise ConfigError(
                    f"{path}: Invalid vrepo configuration file. "
                    "Attribute 'version_path' must be a string."
                )
            raw_version = raw_version.strip()
            if raw_version.startswith("./"):
                version_path = path.parent / raw_version[2:]
            else:
                version_path = path.parent / raw_version

        return cls(path=path, ssh=ssh, git=git, version_path=version_path)

    def to_dict(self) -> dict:
        return {
            "ssh": {"remotes": [asdict(r) for r in self.ssh.remotes]},
            "git": {
                "username": self.git.username,
                "email": self.git.email,
                "remotes": [asdict(r) for r in self.git.remotes],
            },
            "version_path": str(self.version_path),
        }

    def save(self) -> None:
        """Writes the configuration back to its file."""
        self.path.write_text(json.dumps(self.to_dict(), indent=4), encoding="utf-8")


def _list_of(value: Any, section: str, path: Path) -> list:
    if not isinstance(value, list):
        raise ConfigError(
            f"{path}: Invalid vrepo configuration file. "
            f"Attribute '{section}' must be an array."
        )
    return value
