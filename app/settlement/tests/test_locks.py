"""
Tests for DistributedLock.

The autouse mock_redis fixture (settlement/conftest.py) stands in for Redis.
"""

import pytest

from settlement.exceptions import LockAcquisitionError
from settlement.locks import RELEASE_SCRIPT, DistributedLock


class TestDistributedLock:
    def test_acquire_sets_key_with_expiry(self, mock_redis):
        """Should SET NX with the ttl under the lock: prefix."""
        lock = DistributedLock("connect:create:m1", ttl=60)

        lock.acquire()

        assert lock.is_held
        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:connect:create:m1"
        assert kwargs == {"nx": True, "ex": 60}

    def test_tokens_differ_per_lock(self, mock_redis):
        DistributedLock("a").acquire()
        DistributedLock("b").acquire()

        first, second = (c.args[1] for c in mock_redis.set.call_args_list)
        assert first != second

    def test_held_elsewhere_raises(self, mock_redis):
        """Should fail immediately with the lock key in the details."""
        mock_redis.set.return_value = False
        lock = DistributedLock("settlement:payout_sweep")

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.error_code == "LOCK_ACQUISITION_FAILED"
        assert exc_info.value.details == {"key": "lock:settlement:payout_sweep"}
        assert not lock.is_held
        mock_redis.set.assert_called_once()

    def test_release_runs_script_with_own_token(self, mock_redis):
        lock = DistributedLock("k")
        lock.acquire()
        token = mock_redis.set.call_args.args[1]

        assert lock.release() is True
        mock_redis.eval.assert_called_once_with(RELEASE_SCRIPT, 1, "lock:k", token)
        assert not lock.is_held

    def test_release_after_expiry(self, mock_redis):
        """Should report False when the key no longer carries our token."""
        mock_redis.eval.return_value = 0
        lock = DistributedLock("k")
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire(self, mock_redis):
        assert DistributedLock("k").release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_error(self, mock_redis):
        with pytest.raises(RuntimeError):
            with DistributedLock("k") as lock:
                assert lock.is_held
                raise RuntimeError("boom")

        mock_redis.eval.assert_called_once()

    def test_context_manager_skips_body_when_held(self, mock_redis):
        mock_redis.set.return_value = False
        ran = []

        with pytest.raises(LockAcquisitionError):
            with DistributedLock("k"):
                ran.append(True)

        assert ran == []
        mock_redis.eval.assert_not_called()
