import logging
import subprocess
import tempfile
from collections.abc import Iterable
from pathlib import Path

from .constants import APP_NAME, RSYNC_FLAGS

logger = logging.getLogger(APP_NAME)


def _escape_rsync(path: str) -> str:
    """Escapes rsync wildcard characters so a path only matches itself."""
    for char in "\\*?[":
        path = path.replace(char, f"\\{char}")
    return path


class SSHSync:
    """Mirrors a directory to and from `alias:destination` targets with rsync.

    Attributes:
        source (Path): The local directory being mirrored.
    """

    def __init__(self, source: Path):
        self.source = source

    def _rsync(self, args: list[str], action: str) -> None:
        """Runs rsync inside the source directory.

        Args:
            args (list[str]): Arguments following the base flags.
            action (str): 'push' or 'pull', used in the error message.

        Raises:
            RuntimeError: If rsync exits with a non-zero code.
        """
        cmd = ["rsync", *RSYNC_FLAGS, *args]
        logger.debug(f"Executing ($ {' '.join(cmd)})")
        res = subprocess.run(cmd, cwd=self.source, capture_output=True, text=True)
        if res.stdout:
            logger.debug(res.stdout.rstrip())
        if res.returncode != 0:
            err = res.stderr.strip() or f"Child process exited with code {res.returncode}."
            raise RuntimeError(f"Failed to {action} the repository over ssh:\n{err}")

    def push(
        self,
        alias: str,
        destination: str,
        delete: bool = False,
        excludes: Iterable[str] = (),
    ) -> None:
        """Uploads the source directory to a remote directory.

        Args:
            alias (str): The ssh host alias.
            destination (str): The remote directory.
            delete (bool, optional): Whether to delete remote files that do not
                exist locally. Defaults to False.
            excludes (Iterable[str], optional): Root-relative paths to leave
                out (directories with a trailing '/').
        """
        args = [f"{self.source}/", f"{alias.strip()}:{destination.strip()}/"]
        if delete:
            args.append("--delete")

        excludes = list(excludes)
        if not excludes:
            self._rsync(args, "push")
            return

        # Anchor each entry so it only matches at the transfer root.
        with tempfile.NamedTemporaryFile(
            "w", prefix="vrepo-exclude-", suffix=".txt", delete=False
        ) as f:
            f.write("".join(f"/{_escape_rsync(path)}\n" for path in excludes))
            exclude_file = Path(f.name)
        try:
            self._rsync([*args, "--exclude-from", str(exclude_file)], "push")
        finally:
            exclude_file.unlink(missing_ok=True)

    def pull(self, alias: str, source: str, delete: bool = False) -> None:
        """Downloads a remote directory into the source directory.

        Args:
            alias (str): The ssh host alias.
            source (str): The remote directory.
            delete (bool, optional): Whether to delete local files that do not
                exist remotely. Defaults to False.
        """
        args = [f"{alias.strip()}:{source.strip()}/", f"{self.source}/"]
        if delete:
            args.append("--delete")
        self._rsync(args, "pull")
