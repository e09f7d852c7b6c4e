"""
Unit tests for the single-instance lockfile.
"""

import fcntl
import os

import pytest

from authd.core import Lockfile
from authd.core import lockfile as lockfile_module
from authd.errors import LockfileExistsError, LockHeldError


@pytest.fixture
def lock_path(runtime_dir):
    return os.path.join(runtime_dir, "authd.pid")


class TestLockfile:

    def test_acquire_creates_file(self, lock_path):
        lock = Lockfile(lock_path)
        lock.acquire()
        try:
            assert os.path.exists(lock_path)
            assert lock.held
        finally:
            lock.release()

    def test_write_pid(self, lock_path):
        lock = Lockfile(lock_path)
        lock.acquire()
        try:
            lock.write_pid()
            with open(lock_path) as f:
                assert f.read() == f"{os.getpid()}\n"

            lock.write_pid(12345)
            assert Lockfile.read_pid(lock_path) == 12345
        finally:
            lock.release()

    def test_existing_file_refused(self, lock_path):
        with open(lock_path, "w") as f:
            f.write("999\n")

        with pytest.raises(LockfileExistsError):
            Lockfile(lock_path).acquire()

        # The foreign file is left untouched.
        assert Lockfile.read_pid(lock_path) == 999

    def test_second_instance_refused(self, lock_path):
        first = Lockfile(lock_path)
        first.acquire()
        try:
            with pytest.raises(LockfileExistsError):
                Lockfile(lock_path).acquire()
        finally:
            first.release()

    def test_lock_is_exclusive(self, lock_path):
        lock = Lockfile(lock_path)
        lock.acquire()
        try:
            fd = os.open(lock_path, os.O_RDONLY)
            try:
                with pytest.raises(BlockingIOError):
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            finally:
                os.close(fd)
        finally:
            lock.release()

    def test_lock_failure_removes_created_file(self, lock_path, monkeypatch):
        def refuse(fd, op):
            raise BlockingIOError("locked")

        monkeypatch.setattr(lockfile_module.fcntl, "flock", refuse)

        with pytest.raises(LockHeldError):
            Lockfile(lock_path).acquire()
        assert not os.path.exists(lock_path)

    def test_release_removes_file(self, lock_path):
        lock = Lockfile(lock_path)
        lock.acquire()
        lock.release()

        assert not os.path.exists(lock_path)
        assert not lock.held

    def test_release_is_idempotent(self, lock_path):
        lock = Lockfile(lock_path)
        lock.acquire()
        lock.release()
        lock.release()

    def test_write_pid_requires_acquire(self, lock_path):
        with pytest.raises(RuntimeError):
            Lockfile(lock_path).write_pid()

    def test_read_pid_missing(self, lock_path):
        assert Lockfile.read_pid(lock_path) is None

    def test_close_in_child_keeps_file_and_lock(self, lock_path):
        lock = Lockfile(lock_path)
        lock.acquire()
        try:
            pid = os.fork()
            if pid == 0:
                code = 1
                try:
                    fd = lock._fd
                    lock.close_in_child()
                    try:
                        os.fstat(fd)
                    except OSError:
                        code = 0 if not lock.held and os.path.exists(lock_path) else 2
                finally:
                    os._exit(code)

            _, status = os.waitpid(pid, 0)
            assert os.WEXITSTATUS(status) == 0

            assert lock.held
            assert os.path.exists(lock_path)
            other_fd = os.open(lock_path, os.O_RDONLY)
            try:
                with pytest.raises(BlockingIOError):
                    fcntl.flock(other_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            finally:
                os.close(other_fd)
        finally:
            lock.release()
