import json
import logging
import re
import subprocess
from pathlib import Path
from typing import Any

from .constants import APP_NAME, NPM_CONFIG_NAME, README_NAME, VERSION_EXPORT_NAME

logger = logging.getLogger(APP_NAME)

_BADGE_RE = re.compile(r"badge/version-[0-9A-Za-z.+]*-blue")


def increment_version(version: str | None) -> str:
    """Computes the next package version.

    The last component is bumped; a component already at 9 rolls over to 0
    and carries into the previous one. The first component never rolls over.

    Args:
        version (str | None): The current version, or None for a new package.

    Returns:
        str: The next version (e.g., '1.0.9' -> '1.1.0').
    """
    if version is None:
        return "1.0.0"
    parts = [int(x) for x in version.split(".")]
    for i in range(len(parts) - 1, -1, -1):
        if i == 0 or parts[i] < 9:
            parts[i] += 1
            break
        parts[i] = 0
    return ".".join(str(x) for x in parts)


class NpmPackage:
    """An npm package directory and its `package.json` manifest.

    Attributes:
        source (Path): The package directory.
        config_path (Path): The `package.json` location.
        version_path (Path): Where the published version is exported.
        config (dict[str, Any]): The loaded manifest.
    """

    def __init__(self, source: Path, version_path: Path | None = None):
        """Loads the manifest.

        Raises:
            FileNotFoundError: If the directory has no `package.json`.
        """
        self.source = source
        self.config_path = source / NPM_CONFIG_NAME
        self.version_path = version_path or source / VERSION_EXPORT_NAME
        if not self.config_path.exists():
            raise FileNotFoundError(
                f'NPM configuration file "{self.config_path}" does not exist.'
            )
        self.config: dict[str, Any] = {}
        self.load()

    @property
    def name(self) -> str:
        return self.config.get("name", self.source.name)

    @property
    def version(self) -> str | None:
        return self.config.get("version")

    def load(self) -> None:
        """Re-reads the manifest from disk."""
        self.config = json.loads(self.config_path.read_text(encoding="utf-8"))

    def save(self) -> None:
        """Writes the manifest with 4-space indentation."""
        self.config_path.write_text(json.dumps(self.config, indent=4), encoding="utf-8")

    def _npm(self, *args: str) -> subprocess.CompletedProcess:
        logger.debug(f"Executing ($ npm {' '.join(args)}) in {self.source}")
        return subprocess.run(
            ["npm", *args], cwd=self.source, capture_output=True, text=True
        )

    def logged_in(self) -> bool:
        """Checks whether an npm user is logged in."""
        return self._npm("whoami").returncode == 0

    def login(self) -> None:
        """Ensures an npm user is logged in.

        Raises:
            RuntimeError: If nobody is logged in.
        """
        if not self.logged_in():
            raise RuntimeError("No npm user is logged in, execute ($ npm login).")

    def increment_version(self) -> None:
        """Bumps the manifest version, keeping the old one as `live_version`."""
        self.load()
        current = self.version
        self.config["live_version"] = current
        self.config["version"] = increment_version(current)
        self.save()
        logger.info(f"{self.name}: version {current} -> {self.config['version']}")

    def publish(self) -> None:
        """Publishes the package and bumps its version afterwards.

        The README version badge is updated before publishing and restored if
        publishing or the version bump fails.

        Raises:
            RuntimeError: If nobody is logged in, the manifest has no version,
                or an npm command fails.
        """
        self.login()
        self.load()
        version = self.version
        if version is None:
            raise RuntimeError(f"Package {self.name} has no version in package.json.")

        self.version_path.write_text(f'module.exports="{version}";', encoding="utf-8")

        if "bin" in self.config:
            res = self._npm("link")
            if res.returncode != 0:
                raise RuntimeError(f"Failed to link package {self.name}:\n{res.stderr}")

        readme = self.source / README_NAME
        readme_data = None
        if readme.exists():
            readme_data = readme.read_text(encoding="utf-8")
            readme.write_text(
                _BADGE_RE.sub(f"badge/version-{version}-blue", readme_data),
                encoding="utf-8",
            )

        try:
            res = self._npm("publish")
            if res.returncode != 0:
                logger.error(res.stderr.strip())
                raise RuntimeError(f"Failed to publish package {self.name}.")
            self.increment_version()
        except Exception:
            if readme_data is not None:
                readme.write_text(readme_data, encoding="utf-8")
            raise
