"""
History buffer tests — pairwise-averaging compaction of the velocity chart.
"""

import sys
import os
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from history import HistoryBuffer, HistorySample, downsample, HISTORY_THRESHOLD


def samples(n):
    return [HistorySample(0.1 * i, 2.0 * i) for i in range(n)]


class TestDownsample:

    def test_below_threshold_returns_same_list(self):
        data = samples(HISTORY_THRESHOLD - 1)
        assert downsample(data) is data

    def test_at_threshold_halves(self):
        data = samples(HISTORY_THRESHOLD)
        out = downsample(data)
        assert len(out) == HISTORY_THRESHOLD // 2
        assert out[0].time == pytest.approx(0.05)
        assert out[0].velocity == pytest.approx(1.0)
        assert out[-1].time == pytest.approx((0.1 * 1498 + 0.1 * 1499) / 2)

    def test_odd_length_keeps_trailing_sample(self):
        data = samples(5)
        out = downsample(data, threshold=5, factor=2)
        assert len(out) == 3
        assert out[0] == pytest.approx((0.05, 1.0))
        assert out[1] == pytest.approx((0.25, 5.0))
        assert out[2] == data[4]

    def test_factor_three(self):
        data = samples(7)
        out = downsample(data, threshold=6, factor=3)
        # two full groups + first sample of the remainder
        assert len(out) == 3
        assert out[0] == pytest.approx((0.1, 2.0))
        assert out[1] == pytest.approx((0.4, 8.0))
        assert out[2] == data[6]

    def test_time_order_preserved(self):
        rng = np.random.default_rng(7)
        times = np.cumsum(rng.uniform(0.0, 0.05, size=2001))
        data = [HistorySample(float(t), float(v))
                for t, v in zip(times, rng.normal(size=times.size))]
        out = downsample(data)
        assert np.all(np.diff([s.time for s in out]) >= 0.0)


class TestHistoryBuffer:

    def test_starts_with_origin_sample(self):
        buf = HistoryBuffer()
        assert list(buf) == [(0.0, 0.0)]
        assert buf.to_list() == [{"time": 0.0, "velocity": 0.0}]

    def test_length_stays_below_threshold(self):
        buf = HistoryBuffer()
        longest = 0
        for i in range(1, 10_000):
            buf.append(i * 0.016, i * 0.01)
            longest = max(longest, len(buf))
        assert longest <= HISTORY_THRESHOLD - 1
        assert buf.compactions > 0

    def test_small_threshold_compacts_whole_buffer(self):
        buf = HistoryBuffer(threshold=4, factor=2)
        buf.append(1.0, 10.0)
        buf.append(2.0, 20.0)
        assert len(buf) == 3
        buf.append(3.0, 30.0)          # reaches 4 → compacts to 2
        assert len(buf) == 2
        assert buf[0] == pytest.approx((0.5, 5.0))
        assert buf[1] == pytest.approx((2.5, 25.0))

    def test_times_non_decreasing_across_compactions(self):
        buf = HistoryBuffer(threshold=50, factor=2)
        t = 0.0
        for i in range(1000):
            t += 0.01 * (i % 3)        # includes zero-length steps
            buf.append(t, float(i))
        times = np.array([s.time for s in buf])
        assert np.all(np.diff(times) >= 0.0)

    def test_reset_and_clear(self):
        buf = HistoryBuffer()
        for i in range(20):
            buf.append(i, i)
        buf.reset()
        assert list(buf) == [(0.0, 0.0)]
        buf.clear()
        assert len(buf) == 0

    @pytest.mark.parametrize("threshold, factor", [(10, 1), (1, 2)])
    def test_rejects_bad_configuration(self, threshold, factor):
        with pytest.raises(ValueError):
            HistoryBuffer(threshold=threshold, factor=factor)
