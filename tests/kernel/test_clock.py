"""Tests for purge_kernel.domain.clock."""

from datetime import datetime, timedelta, timezone

import pytest

from purge_kernel.domain.clock import DeterministicClock, SystemClock


class TestSystemClock:
    def test_now_is_timezone_aware(self):
        assert SystemClock().now().tzinfo is not None


class TestDeterministicClock:
    def test_fixed_until_advanced(self):
        t0 = datetime(2026, 2, 1, tzinfo=timezone.utc)
        clock = DeterministicClock(t0)
        assert clock.now() == clock.now() == t0

    def test_advance_and_tick(self):
        t0 = datetime(2026, 2, 1, tzinfo=timezone.utc)
        clock = DeterministicClock(t0)
        clock.advance(1.5)
        assert clock.now() == t0 + timedelta(seconds=1.5)
        assert clock.tick() == t0 + timedelta(seconds=2.5)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(100)
        t1 = datetime(2030, 1, 1, tzinfo=timezone.utc)
        clock.set_time(t1)
        assert clock.now() == t1

    def test_cannot_move_backwards(self):
        with pytest.raises(ValueError):
            DeterministicClock().advance(-1)
