import os

import pytest

from core.exceptions import LockError
from core.run_lock import RunLock


def test_lock_is_exclusive(tmp_path):
    path = str(tmp_path / "agent.lock")

    with RunLock(path):
        with pytest.raises(LockError):
            RunLock(path).acquire()


def test_lock_can_be_reacquired_after_release(tmp_path):
    path = str(tmp_path / "run" / "agent.lock")
    lock = RunLock(path)

    lock.acquire()
    lock.release()

    with RunLock(path) as again:
        assert again.path == path


def test_lock_file_records_pid(tmp_path):
    path = tmp_path / "agent.lock"

    with RunLock(str(path)):
        assert path.read_text().strip() == str(os.getpid())
