"""Tests for the window accumulator."""

import numpy as np
import pytest

from streamscribe.audio.window import WindowAccumulator


class TestWindowAccumulator:
    """Tests for WindowAccumulator class."""

    def test_invalid_window_size(self):
        with pytest.raises(ValueError):
            WindowAccumulator(0)

    def test_partial_window_is_buffered(self):
        """Test fewer samples than a window emit nothing."""
        acc = WindowAccumulator(512)

        assert acc.push(np.zeros(300, dtype=np.float32)) == []
        assert acc.pending == 300

    def test_windows_across_chunk_boundary(self):
        """Test samples from consecutive pushes are joined into one window."""
        acc = WindowAccumulator(4)

        assert acc.push(np.array([1, 2, 3], dtype=np.float32)) == []
        windows = acc.push(np.array([4, 5, 6, 7, 8, 9], dtype=np.float32))

        assert len(windows) == 2
        np.testing.assert_array_equal(windows[0], [1, 2, 3, 4])
        np.testing.assert_array_equal(windows[1], [5, 6, 7, 8])
        assert acc.pending == 1

    def test_windows_are_read_only(self):
        acc = WindowAccumulator(4)
        window = acc.push(np.arange(4, dtype=np.float32))[0]
        with pytest.raises(ValueError):
            window[0] = 1.0

    def test_buffer_not_aliased(self):
        """Test mutating the pushed array does not change buffered samples."""
        acc = WindowAccumulator(4)
        samples = np.array([1, 2], dtype=np.float32)
        acc.push(samples)
        samples[:] = 0

        window = acc.push(np.array([3, 4], dtype=np.float32))[0]
        np.testing.assert_array_equal(window, [1, 2, 3, 4])

    def test_no_sample_loss_or_reordering(self):
        """Test emitted windows plus the remainder equal everything pushed, in order."""
        rng = np.random.default_rng(3)
        acc = WindowAccumulator(512)
        pushed = []
        emitted = []

        for size in rng.integers(0, 2000, size=50):
            samples = rng.standard_normal(size).astype(np.float32)
            pushed.append(samples)
            windows = acc.push(samples)
            assert all(len(w) == 512 for w in windows)
            emitted.extend(windows)

        remainder = acc.drain()
        assert len(remainder) < 512
        assert acc.pending == 0

        joined = np.concatenate(emitted + [remainder]) if emitted else remainder
        np.testing.assert_array_equal(joined, np.concatenate(pushed))
