import fcntl
import os
from typing import Optional, TextIO

from core.exceptions import LockError
from core.logging_config import LoggerMixin


class RunLock(LoggerMixin):
    """Advisory lock file that keeps overlapping agent runs from publishing twice."""

    def __init__(self, path: str):
        self.path = path
        self._file: Optional[TextIO] = None

    def acquire(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handle = open(self.path, 'a+')
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            raise LockError(f"Another agent run holds {self.path}")
        except OSError:
            handle.close()
            raise
        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._file = handle
        self.logger.debug("Acquired run lock", path=self.path)

    def release(self) -> None:
        if self._file is None:
            return
        try:
            fcntl.flock(self._file, fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None
        self.logger.debug("Released run lock", path=self.path)

    def __enter__(self) -> 'RunLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
