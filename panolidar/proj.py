"""Panoramic projection model: 360 degree azimuth, centred vertical field of view."""

from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np

TAU = 2.0 * math.pi


class SinCos(NamedTuple):
    sin: float
    cos: float

    @classmethod
    def of(cls, angle: float) -> SinCos:
        return cls(math.sin(angle), math.cos(angle))


def deg2rad(deg: float) -> float:
    return deg * (math.pi / 180.0)


def rad2deg(rad: float) -> float:
    return rad * (180.0 / math.pi)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def is_pix_bad(px) -> bool:
    """A pixel ``(x, y)`` is bad if either coordinate is negative."""
    return px[0] < 0 or px[1] < 0


class Projection:
    """Pano projection model; ``size`` is ``(width, height)``."""

    def __init__(self, size, vfov: float = 0.0) -> None:
        width, height = (int(v) for v in size)
        if width <= 1 or height <= 1:
            raise ValueError(f"projection size must exceed 1x1, got {width}x{height}")
        if vfov <= 0:
            # Same horizontal and vertical resolution
            vfov = TAU * height / width
        if rad2deg(vfov) > 120.0:
            raise ValueError("vertical fov too big")

        self._size = (width, height)
        self.elev_max = vfov / 2.0
        self.elev_delta = vfov / (height - 1)
        self.azim_delta = TAU / width

        # Elevation from top to bottom, azimuth clockwise from +x
        self.elevs = tuple(SinCos.of(self.elev_max - i * self.elev_delta) for i in range(height))
        self.azims = (SinCos.of(0.0),) + tuple(
            SinCos.of(TAU - i * self.azim_delta) for i in range(1, width)
        )

    def __repr__(self) -> str:
        return (
            f"Projection(size={self.rows}x{self.cols}, "
            f"elev_max={rad2deg(self.elev_max):.2f}[deg], "
            f"elev_delta={rad2deg(self.elev_delta):.4f}[deg], "
            f"azim_delta={rad2deg(self.azim_delta):.4f}[deg])"
        )

    @property
    def size(self) -> tuple[int, int]:
        return self._size

    @property
    def rows(self) -> int:
        return self._size[1]

    @property
    def cols(self) -> int:
        return self._size[0]

    def to_row_d(self, z: float, r: float) -> float:
        s = min(1.0, max(-1.0, z / r))
        return (self.elev_max - math.asin(s)) / self.elev_delta

    def to_col_d(self, x: float, y: float) -> float:
        # Column index grows clockwise from +x while theta grows counter-clockwise
        return (math.atan2(y, -x) + math.pi) / self.azim_delta

    def to_row(self, z: float, r: float) -> int:
        return round_half_up(self.to_row_d(z, r))

    def to_col(self, x: float, y: float) -> int:
        return round_half_up(self.to_col_d(x, y))

    def backward(self, row: int, col: int, rg: float) -> np.ndarray:
        """3D point at pixel ``(row, col)`` with range ``rg``."""
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexError(f"pixel ({row}, {col}) outside {self.rows}x{self.cols}")
        elev = self.elevs[row]
        azim = self.azims[col]
        r_xy = elev.cos * rg
        return np.array([r_xy * azim.cos, r_xy * azim.sin, rg * elev.sin])

    def forward(self, x: float, y: float, z: float, r: float) -> tuple[int, int]:
        """Pixel ``(col, row)`` of a point; col is -1 when the row is out of bounds."""
        row = self.to_row(z, r)
        if row < 0 or row >= self.rows:
            return (-1, row)
        col = self.to_col(x, y)
        if col >= self.cols:
            col -= self.cols
        return (col, row)