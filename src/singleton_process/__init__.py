"""singleton_process — refuse to start a second copy of a named process.

A process claims a name by taking an exclusive ``flock`` on
``<root>/tmp/pids/<name>.pid`` and writing its PID there.  Any other process
(or another handle in the same process) can ask whether the name is taken
without disturbing the holder.  The kernel drops the lock when the holder
dies, so a crashed holder never blocks its successor.
"""

__version__ = "0.1.0"

from singleton_process.lock import (  # noqa: E402
    AlreadyRunningError,
    AtexitHooks,
    ExitHooks,
    LockIOError,
    SingletonProcess,
    SingletonProcessError,
)

__all__ = [
    "AlreadyRunningError",
    "AtexitHooks",
    "ExitHooks",
    "LockIOError",
    "SingletonProcess",
    "SingletonProcessError",
    "__version__",
]
