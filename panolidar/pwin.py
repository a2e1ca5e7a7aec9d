"""A fixed-capacity window of depth panoramas with one extra slot for the removed one."""

from __future__ import annotations

from collections.abc import Iterator

from panolidar.pano import DepthPano
from panolidar.transform import SE3


class PanoWindow:
    """Window of panos; slots past ``len(self)`` are free, the last slot holds the removed pano."""

    def __init__(self, num_panos: int = 0, pano_size=None) -> None:
        self._count = 0
        self._slots: list[DepthPano] = []
        if pano_size is None:
            self.resize(num_panos)
        else:
            self.allocate(num_panos, pano_size)

    def __repr__(self) -> str:
        return f"PanoWindow(size={len(self)}/{self.capacity})"

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[DepthPano]:
        return iter(self._slots[: self._count])

    def __getitem__(self, i: int) -> DepthPano:
        if not 0 <= i < self.capacity:
            raise IndexError(f"pano index {i} outside [0, {self.capacity})")
        return self._slots[i]

    @property
    def capacity(self) -> int:
        return len(self._slots) - 1

    @property
    def empty(self) -> bool:
        return self._count == 0

    @property
    def full(self) -> bool:
        return self._count >= self.capacity

    @property
    def first(self) -> DepthPano:
        return self[0]

    @property
    def last(self) -> DepthPano:
        return self[self._count - 1]

    @property
    def removed(self) -> DepthPano:
        return self._slots[-1]

    def add_pano(self, pano_id: int, time_ns: int, tf_o_p: SE3 | None = None) -> DepthPano:
        if self.full:
            raise ValueError("pano window is full")
        if not time_ns > 0:
            raise ValueError("time_ns must be positive")
        pano = self[self._count]
        pano.reset(pano_id, tf_o_p)
        pano.time_ns = time_ns
        self._count += 1
        return pano

    def remove_pano_at(self, i: int) -> DepthPano:
        """Move pano ``i`` to the removed slot and shift the rest left."""
        if not 0 <= i < self._count:
            raise IndexError(f"pano index {i} outside [0, {self._count})")
        self._slots[i:] = self._slots[i + 1 :] + [self._slots[i]]
        self._count -= 1
        return self._slots[-1]

    def remove_front(self) -> DepthPano:
        return self.remove_pano_at(0)

    def reset(self) -> None:
        self._count = 0

    def resize(self, num_panos: int) -> None:
        """Resize to ``num_panos`` (plus the removed slot) with default-sized panos."""
        size = num_panos + 1
        if size < 1:
            raise ValueError("num_panos must be non-negative")
        self._slots = self._slots[:size] + [
            DepthPano() for _ in range(size - len(self._slots))
        ]
        self._count = min(self._count, self.capacity)

    def allocate(self, num_panos: int, pano_size) -> int:
        """Resize and allocate every slot at ``pano_size``; returns bytes allocated."""
        if num_panos < 0:
            raise ValueError("num_panos must be non-negative")
        self._slots = [DepthPano(pano_size) for _ in range(num_panos + 1)]
        self._count = min(self._count, self.capacity)
        return sum(pano.nbytes for pano in self._slots)