"""Shared pytest helpers and fixtures for the singleton_process test suite.

settings           — Settings rooted at tmp_path
exit_hooks         — FakeExitHooks: records release callbacks instead of using atexit
make_handle(name)  — SingletonProcess bound to the two fixtures above
spawn_holder(name) — child interpreter that acquires *name* and waits for commands
wait_until(pred)   — poll a predicate until true or timeout
"""

import os
import subprocess
import sys
import time
from pathlib import Path

import pytest

from singleton_process.config import Settings
from singleton_process.lock import SingletonProcess

SRC_DIR = Path(__file__).parent.parent / "src"

# Child protocol: prints "locked" once it holds the lock, then reads stdin
# lines: "release" → prints release()'s result, "exit" → normal exit.
HOLDER_SCRIPT = """
import sys
from singleton_process import SingletonProcess
from singleton_process.config import Settings

handle = SingletonProcess(sys.argv[1], sys.argv[2], settings=Settings())
handle.acquire()
print("locked", flush=True)
for line in sys.stdin:
    command = line.strip()
    if command == "release":
        print(handle.release(), flush=True)
    elif command == "exit":
        break
"""


class FakeExitHooks:
    def __init__(self) -> None:
        self.callbacks: list = []

    def register(self, callback) -> None:
        self.callbacks.append(callback)

    def run(self) -> None:
        for callback in self.callbacks:
            callback()


def child_env() -> dict[str, str]:
    """Environment for child interpreters: package importable, no SINGLETON_* leakage."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("SINGLETON_")}
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(SRC_DIR), env.get("PYTHONPATH")) if p)
    return env


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(paths={"root_path": str(tmp_path)})


@pytest.fixture
def exit_hooks() -> FakeExitHooks:
    return FakeExitHooks()


@pytest.fixture
def make_handle(settings: Settings, exit_hooks: FakeExitHooks):
    """Factory for handles; any lock still held at teardown is released."""
    handles: list[SingletonProcess] = []

    def _make(name: str = "testing") -> SingletonProcess:
        handle = SingletonProcess(name, settings=settings, exit_hooks=exit_hooks)
        handles.append(handle)
        return handle

    yield _make
    for handle in handles:
        handle.release()


@pytest.fixture
def spawn_holder(tmp_path: Path):
    """Start a child process holding *name* under tmp_path; killed on teardown."""
    children: list[subprocess.Popen] = []

    def _spawn(name: str = "testing") -> subprocess.Popen:
        child = subprocess.Popen(
            [sys.executable, "-c", HOLDER_SCRIPT, name, str(tmp_path)],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=child_env(),
        )
        children.append(child)
        line = child.stdout.readline().strip()
        if line != "locked":
            child.kill()
            _, err = child.communicate(timeout=5)
            pytest.fail(f"holder did not lock (got {line!r}): {err}")
        return child

    yield _spawn
    for child in children:
        if child.poll() is None:
            child.kill()
        child.communicate(timeout=5)
