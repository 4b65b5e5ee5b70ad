"""Per-encoder audio sample FIFO backed by a numpy ring buffer."""

from __future__ import annotations

import numpy as np


class SampleFifo:
    """Planar sample queue re-framing decoder output to the encoder frame size."""

    def __init__(self, channels: int, *, capacity: int = 4096, dtype: np.dtype | type = np.float32) -> None:
        if channels <= 0:
            raise ValueError("channels must be positive")
        self._buffer = np.zeros((channels, max(capacity, 1)), dtype=dtype)
        self._start = 0
        self._size = 0

    @property
    def channels(self) -> int:
        return self._buffer.shape[0]

    @property
    def capacity(self) -> int:
        return self._buffer.shape[1]

    def __len__(self) -> int:
        return self._size

    def _grow(self, needed: int) -> None:
        capacity = self.capacity
        while capacity < needed:
            capacity *= 2
        data = self._peek(self._size)
        self._buffer = np.zeros((self.channels, capacity), dtype=self._buffer.dtype)
        self._buffer[:, : self._size] = data
        self._start = 0

    def _peek(self, count: int) -> np.ndarray:
        indexes = (self._start + np.arange(count)) % self.capacity
        return self._buffer[:, indexes]

    def write(self, samples: np.ndarray) -> None:
        """Append samples shaped `(channels, n)`."""

        samples = np.asarray(samples)
        if samples.ndim != 2 or samples.shape[0] != self.channels:
            raise ValueError(f"Expected samples shaped ({self.channels}, n), got {samples.shape}")
        count = samples.shape[1]
        if count == 0:
            return
        if self._size + count > self.capacity:
            self._grow(self._size + count)
        indexes = (self._start + self._size + np.arange(count)) % self.capacity
        self._buffer[:, indexes] = samples
        self._size += count

    def read(self, count: int) -> np.ndarray:
        """Remove and return up to `count` samples in arrival order."""

        count = max(0, min(count, self._size))
        data = self._peek(count)
        self._start = (self._start + count) % self.capacity
        self._size -= count
        return data
