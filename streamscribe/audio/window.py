"""Fixed-size window accumulation across chunk boundaries."""

import numpy as np


class WindowAccumulator:
    """
    Buffers decoded samples and hands out fixed-size, non-overlapping windows.

    The buffer is owned exclusively by the accumulator and is only changed
    through push() and drain(). Samples that do not fill a whole window stay
    buffered until the next push.
    """

    def __init__(self, window_size: int):
        if window_size <= 0:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self.window_size = window_size
        self._buffer = np.empty(0, dtype=np.float32)

    def push(self, samples: np.ndarray) -> list[np.ndarray]:
        """
        Append samples and return every complete window, in arrival order.

        Returned windows are read-only copies of exactly window_size samples.
        """
        samples = np.asarray(samples, dtype=np.float32)
        if samples.size:
            self._buffer = np.concatenate((self._buffer, samples))

        num_windows = len(self._buffer) // self.window_size
        if num_windows == 0:
            return []

        consumed = num_windows * self.window_size
        windows = self._buffer[:consumed].reshape(num_windows, self.window_size).copy()
        windows.flags.writeable = False
        self._buffer = self._buffer[consumed:].copy()

        return list(windows)

    def drain(self) -> np.ndarray:
        """Remove and return the partial-window remainder."""
        remainder = self._buffer
        self._buffer = np.empty(0, dtype=np.float32)
        return remainder

    @property
    def pending(self) -> int:
        """Number of buffered samples not yet emitted as a window."""
        return len(self._buffer)
