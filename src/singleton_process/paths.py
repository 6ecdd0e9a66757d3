"""Pid file path derivation.

Every pid file lives at ``<root_path>/<pid_dir>/<name>.pid``.  The default
layout mirrors a conventional application tree::

  <root_path>/
    tmp/pids/
      worker.pid
      mailer.pid
"""

from dataclasses import dataclass
from pathlib import Path

from singleton_process.config import Settings

PID_SUFFIX = ".pid"


def validate_name(name: str) -> str:
    """Return *name* unchanged, or raise ``ValueError`` if it cannot name a pid file."""
    if not isinstance(name, str) or not name:
        raise ValueError("process name must be a non-empty string")
    if name in (".", "..") or "/" in name or "\\" in name or "\0" in name:
        raise ValueError(f"process name must not contain path components: {name!r}")
    return name


@dataclass(frozen=True)
class PidPaths:
    """Resolves pid file locations for a base directory.

    Construct with ``PidPaths.from_settings(settings)`` so the default root and
    pid directory come from configuration.
    """

    root_path: Path
    pid_dir: Path = Path("tmp/pids")

    @classmethod
    def from_settings(cls, settings: Settings, root_path: Path | str | None = None) -> "PidPaths":
        """Derive paths from settings; an explicit *root_path* wins over the configured one."""
        root = Path(root_path) if root_path is not None else settings.paths.root_path
        return cls(root_path=root, pid_dir=settings.paths.pid_dir)

    @property
    def pid_dir_path(self) -> Path:
        return self.root_path / self.pid_dir

    def pidfile_path(self, name: str) -> Path:
        return self.pid_dir_path / f"{validate_name(name)}{PID_SUFFIX}"

    def ensure_pid_dir(self) -> Path:
        """Create the pid directory if needed (idempotent) and return it."""
        path = self.pid_dir_path
        path.mkdir(parents=True, exist_ok=True)
        return path
