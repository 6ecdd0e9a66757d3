"""Singleton process lock: at most one live holder per name on this host.

``SingletonProcess(name)`` owns the pid file ``<root>/tmp/pids/<name>.pid``.
Ownership is the kernel's ``flock`` on that file, never the file's existence:
a process that dies for any reason drops its lock, so a leftover pid file is
just a stale marker and ``running()`` reports ``False`` for it.

Usage::

    from singleton_process.lock import AlreadyRunningError, SingletonProcess

    worker = SingletonProcess("worker")
    try:
        worker.run(main_loop)
    except AlreadyRunningError as exc:
        log.error("worker already running", pid=exc.pid)

    # or, for entry points that should quietly step aside:
    SingletonProcess("worker").lock_or_exit()

Lock attempts never block.  ``flock`` locks belong to the open file
description, so a second handle in the same process is refused exactly like
a handle in another process.
"""

from __future__ import annotations

import atexit
import fcntl
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, TypeVar

from singleton_process.config import Settings, get_settings
from singleton_process.logging import get_logger
from singleton_process.paths import PidPaths, validate_name

T = TypeVar("T")

_log = get_logger(__name__)


class SingletonProcessError(RuntimeError):
    """Base class for singleton lock failures."""


class AlreadyRunningError(SingletonProcessError):
    """Raised by ``acquire()`` when another descriptor holds the lock.

    ``pid`` is whatever the pid file records, or None if it is empty or
    unreadable (a holder that has locked but not yet written).
    """

    def __init__(self, name: str, pid: int | None, path: Path) -> None:
        self.name = name
        self.pid = pid
        self.path = path
        holder = f"PID {pid}" if pid is not None else "PID unknown"
        super().__init__(f"{name} is already running ({holder}).  Pid file: {path}")


class LockIOError(SingletonProcessError):
    """Raised when the pid file cannot be opened, locked, written or removed."""

    def __init__(self, path: Path, action: str, exc: OSError) -> None:
        self.path = path
        super().__init__(f"cannot {action} pid file {path}: {exc.strerror or exc}")


class ExitHooks(Protocol):
    """Anything that can run a callback when the process terminates normally."""

    def register(self, callback: Callable[[], Any]) -> None: ...


class AtexitHooks:
    """``ExitHooks`` backed by the interpreter's ``atexit`` registry."""

    def register(self, callback: Callable[[], Any]) -> None:
        atexit.register(callback)


class SingletonProcess:
    """Handle on one named singleton slot.

    Args:
        name: Slot name; becomes ``<name>.pid``.  Must not contain path separators.
        root_path: Base directory; defaults to ``settings.paths.root_path``.
        settings: Pre-loaded settings; loads from ``get_settings()`` if None.
        exit_hooks: Where to register release-on-exit; defaults to ``atexit``.
    """

    def __init__(
        self,
        name: str,
        root_path: Path | str | None = None,
        *,
        settings: Settings | None = None,
        exit_hooks: ExitHooks | None = None,
    ) -> None:
        # Open only while this handle holds the lock.
        self._fd: int | None = None
        # PID that took the lock; a forked child inherits _fd but not ownership.
        self._owner_pid: int | None = None
        self._name = validate_name(name)
        if settings is None:
            settings = get_settings()
        self._paths = PidPaths.from_settings(settings, root_path)
        self._abort_exit_code = settings.process.abort_exit_code
        self._exit_hooks = exit_hooks if exit_hooks is not None else AtexitHooks()
        self._exit_hook_registered = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def root_path(self) -> Path:
        return self._paths.root_path

    @property
    def pidfile_path(self) -> Path:
        return self._paths.pidfile_path(self._name)

    def __repr__(self) -> str:
        return f"SingletonProcess(name={self._name!r}, pidfile={str(self.pidfile_path)!r})"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def acquire(self) -> None:
        """Take the lock and record our PID; raise ``AlreadyRunningError`` if taken.

        The pid file is opened without truncation, and only rewritten once the
        lock is ours, so a reader never sees a half-written file from a loser.

        A refused or failed attempt closes the descriptor, so a handle that
        does not hold the lock holds no descriptor either; the next attempt
        opens a fresh one.
        """
        path = self.pidfile_path
        while True:
            fd = self._open_pidfile(path)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                self._close()
                raise AlreadyRunningError(self._name, _read_pid(path), path) from None
            except OSError as exc:
                self._close()
                raise LockIOError(path, "lock", exc) from exc
            if _is_current_file(fd, path):
                break
            # Previous holder unlinked the file after we opened it; the lock we
            # hold is on an orphaned inode.  Start over on the live path.
            self._close()

        try:
            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            os.write(fd, f"{os.getpid()}\n".encode())
            os.fsync(fd)
        except OSError as exc:
            self._close()
            raise LockIOError(path, "write", exc) from exc

        self._owner_pid = os.getpid()
        if not self._exit_hook_registered:
            self._exit_hooks.register(self.release)
            self._exit_hook_registered = True

    lock = acquire

    def lock_or_exit(self, exit_code: int | None = None) -> None:
        """``acquire()``, or end the process if another holder is running.

        Only ``AlreadyRunningError`` turns into ``SystemExit``; IO failures
        still propagate.
        """
        try:
            self.acquire()
        except AlreadyRunningError as exc:
            code = self._abort_exit_code if exit_code is None else exit_code
            _log.warning(
                "already running, exiting",
                slot=self._name,
                holder_pid=exc.pid,
                pidfile=str(exc.path),
                exit_code=code,
            )
            raise SystemExit(code) from exc

    def run(self, body: Callable[..., T] | None = None, /, *args: Any, **kwargs: Any) -> T | None:
        """Call ``body(*args, **kwargs)`` exactly once while holding the lock.

        The lock is released however *body* exits; its return value or
        exception is passed through unchanged.
        """
        self.acquire()
        try:
            if body is None:
                return None
            return body(*args, **kwargs)
        finally:
            self.release()

    def release(self) -> bool:
        """Remove our pid file and drop the lock.

        Returns True iff nobody holds the lock afterwards.  Safe to call on a
        handle that never acquired: nothing is touched, the check still runs.

        In a child forked from the holder, only the inherited descriptor is
        closed; the parent keeps both the lock and its pid file.
        """
        fd = self._fd
        if fd is not None:
            path = self.pidfile_path
            try:
                # Never remove a file some later holder created, or one owned
                # by the process we were forked from.
                if self._owner_pid == os.getpid() and _is_current_file(fd, path):
                    path.unlink(missing_ok=True)
            except OSError as exc:
                raise LockIOError(path, "remove", exc) from exc
            finally:
                self._close()
                self._owner_pid = None
        return not self.running()

    unlock = release

    def __enter__(self) -> SingletonProcess:
        self.acquire()
        return self

    def __exit__(self, *_: object) -> None:
        self.release()

    def __del__(self) -> None:
        # Drops the kernel lock; the pid file stays behind as a stale marker.
        if getattr(self, "_fd", None) is not None:
            self._close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def running(self) -> bool:
        """Return True if some descriptor, anywhere on the host, holds the lock.

        Probes with a separate, non-creating descriptor that is unlocked and
        closed before returning, so a status check never creates a pid file
        and never disturbs the real holder.
        """
        path = self.pidfile_path
        try:
            probe = os.open(path, os.O_RDONLY)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise LockIOError(path, "open", exc) from exc
        try:
            fcntl.flock(probe, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        except OSError as exc:
            raise LockIOError(path, "probe", exc) from exc
        else:
            fcntl.flock(probe, fcntl.LOCK_UN)
            return False
        finally:
            os.close(probe)

    def pid(self) -> int | None:
        """Return the holder's PID, or None if nothing holds the lock.

        A holder caught between locking and writing may yield None or a
        previous run's PID.
        """
        if not self.running():
            return None
        return _read_pid(self.pidfile_path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_pidfile(self, path: Path) -> int:
        if self._fd is None:
            try:
                self._paths.ensure_pid_dir()
                self._fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
            except OSError as exc:
                raise LockIOError(path, "open", exc) from exc
        return self._fd

    def _close(self) -> None:
        fd, self._fd = self._fd, None
        if fd is not None:
            os.close(fd)


def _is_current_file(fd: int, path: Path) -> bool:
    """Return True if *fd* is the file currently linked at *path*."""
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return False
    fst = os.fstat(fd)
    return (st.st_dev, st.st_ino) == (fst.st_dev, fst.st_ino)


def _read_pid(path: Path) -> int | None:
    """Return the PID recorded in *path*, or None if missing, empty or garbled."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise LockIOError(path, "read", exc) from exc
    try:
        pid = int(text.strip())
    except ValueError:
        return None
    return pid if pid > 0 else None
