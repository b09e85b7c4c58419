"""
Single-instance guard for one host: a PID file created with O_EXCL.
It does not coordinate across hosts; the transactional claim does that.
"""
import logging
import os
from typing import Optional

from shared.config import BOT_PID_FILE

logger = logging.getLogger(__name__)


class InstanceAlreadyRunning(RuntimeError):
    def __init__(self, pid: Optional[int], path: str):
        super().__init__(f"Another instance is running (pid={pid}, pid_file={path})")
        self.pid = pid
        self.path = path


def _read_pid(path: str) -> Optional[int]:
    try:
        with open(path) as f:
            return int(f.read().strip() or 0) or None
    except (OSError, ValueError):
        return None


def pid_alive(pid: Optional[int]) -> bool:
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists but owned by someone else
        return True
    return True


class InstanceGuard:
    def __init__(self, path: str = BOT_PID_FILE):
        self.path = path
        self.acquired = False

    def acquire(self) -> None:
        """Raises InstanceAlreadyRunning when a live process holds the PID file."""
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            pid = _read_pid(self.path)
            if pid_alive(pid) and pid != os.getpid():
                logger.warning("[GUARD] Instance already running pid=%s pid_file=%s", pid, self.path)
                raise InstanceAlreadyRunning(pid, self.path)
            logger.warning("[GUARD] Clearing stale pid file %s (pid=%s)", self.path, pid)
            os.remove(self.path)
            return self.acquire()

        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()}\n")
        self.acquired = True
        logger.info("[GUARD] Lock acquired pid=%s pid_file=%s", os.getpid(), self.path)

    def release(self) -> None:
        if not self.acquired:
            return
        try:
            if _read_pid(self.path) == os.getpid():
                os.remove(self.path)
        except OSError as e:
            logger.warning("[GUARD] Lock release warning for %s: %s", self.path, e)
        self.acquired = False

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
