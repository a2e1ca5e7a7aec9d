"""Lidar scans and the sweep buffer they are accumulated into."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from panolidar.transform import SE3

SCAN_DTYPE = np.dtype(
    [("x", "<f4"), ("y", "<f4"), ("z", "<f4"), ("r16u", "<u2"), ("s16u", "<u2")]
)

# Bit pattern left in the range/signal fields when the 4th float is set to NaN
_NAN_SIGNAL = 32704

_R_MAX_INV = np.float32(1.0 / 100.0)


def wrap_cols(c: int, cols: int) -> int:
    """Like ``c % cols`` but only for ``c`` in ``[-cols, 2 * cols)``."""
    if c < 0:
        return c + cols
    if c >= cols:
        return c - cols
    return c


@dataclass
class ScanInfo:
    end_time_ns: int = 0  # time of last col
    col_dtime: float = 0.0  # dt between two columns
    range_scale: float = 0.0  # converts raw range to metres
    col_span: tuple[int, int] = (0, 0)

    def check(self) -> None:
        if self.end_time_ns < 0:
            raise ValueError("end_time_ns must be non-negative")
        if self.col_dtime < 0:
            raise ValueError("col_dtime must be non-negative")
        if self.col_span[0] < 0:
            raise ValueError("col_span start must be non-negative")

    @property
    def span_size(self) -> int:
        return self.col_span[1] - self.col_span[0]


class LidarScan:
    """A block of lidar columns stored as a ``SCAN_DTYPE`` array of shape (rows, cols)."""

    def __init__(self, data, info: ScanInfo) -> None:
        data = np.asarray(data)
        if data.dtype != SCAN_DTYPE:
            raise ValueError(f"scan data must have dtype {SCAN_DTYPE}, got {data.dtype}")
        if data.ndim != 2 or data.size == 0:
            raise ValueError("scan data must be a non-empty 2D array")
        info.check()
        if info.span_size != data.shape[1]:
            raise ValueError(f"col_span size {info.span_size} != cols {data.shape[1]}")
        self.data = data
        self.info = info

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={self.cols}x{self.rows}, info={self.info})"

    @property
    def rows(self) -> int:
        return self.data.shape[0]

    @property
    def cols(self) -> int:
        return self.data.shape[1]

    @property
    def size(self) -> tuple[int, int]:
        """``(width, height)``."""
        return (self.cols, self.rows)

    @property
    def total(self) -> int:
        return self.data.size

    @property
    def span(self) -> tuple[int, int]:
        return self.info.col_span

    def bad_mask(self) -> np.ndarray:
        return np.isnan(self.data["x"])

    def xyz(self) -> np.ndarray:
        """Points as a (rows, cols, 3) float32 array."""
        return np.stack([self.data["x"], self.data["y"], self.data["z"]], axis=-1)

    def count_num_valid(self) -> int:
        return int(np.count_nonzero(~self.bad_mask()))

    def time_from_end(self, n: int) -> float:
        return self.info.end_time_ns / 1e9 - self.info.col_dtime * n

    def time_end(self) -> float:
        return self.time_from_end(0)

    def time_end_ns(self) -> float:
        return float(self.info.end_time_ns)

    def range_at(self, row: int, col: int) -> float:
        r16u = np.float32(self.data["r16u"][row, col])
        return float(r16u / np.float32(self.info.range_scale))

    def extract_range(self) -> np.ndarray:
        return self.data["r16u"].copy()

    def extract_signal(self) -> np.ndarray:
        return self.data["s16u"].copy()

    def set_bad(self, start: int, stop: int) -> None:
        """Mark columns ``[start, stop)`` as invalid."""
        if start < 0:
            raise ValueError("start must be non-negative")
        if stop >= self.cols:
            raise ValueError(f"stop {stop} must be less than cols {self.cols}")
        if stop <= start:
            return
        block = self.data[:, start:stop]
        block["x"] = np.nan
        block["y"] = np.nan
        block["z"] = np.nan
        block["r16u"] = 0
        block["s16u"] = _NAN_SIGNAL


class LidarSweep(LidarScan):
    """Full sweep buffer with range/signal gradients and per-column transforms."""

    def __init__(self, size) -> None:
        width, height = (int(v) for v in size)
        self.data = np.zeros((height, width), dtype=SCAN_DTYPE)
        self.info = ScanInfo()
        self.ddrdu = np.full((height, width), np.nan, dtype=np.float32)
        self.dsdu = np.zeros((height, width), dtype=np.uint16)
        self.tfs = [SE3.identity() for _ in range(width)]

    @property
    def nbytes(self) -> int:
        return self.data.nbytes + self.ddrdu.nbytes + self.dsdu.nbytes + len(self.tfs) * 48

    def tf_at(self, col: int) -> SE3:
        return self.tfs[col]

    def is_partial(self) -> bool:
        return self.info.span_size < self.cols

    def add(self, scan: LidarScan) -> int:
        """Copy a scan into its column span; returns the number of pixels added."""
        if self.data.size == 0:
            raise ValueError("sweep is not allocated")
        if scan.data.dtype != self.data.dtype:
            raise ValueError("sweep/scan type mismatch")
        if scan.rows != self.rows:
            raise ValueError("sweep/scan row mismatch")
        if scan.cols > self.cols:
            raise ValueError("scan has too many cols")
        start, stop = scan.span
        if stop > self.cols:
            raise ValueError(f"scan span [{start}, {stop}) exceeds sweep cols {self.cols}")

        self._set_info(scan.info)
        self.data[:, start:stop] = scan.data
        return scan.total

    def _set_info(self, new: ScanInfo) -> None:
        info = self.info
        if info.range_scale > 0 and info.range_scale != new.range_scale:
            raise ValueError("range_scale changed between scans")
        if info.col_dtime > 0 and info.col_dtime != new.col_dtime:
            raise ValueError("col_dtime changed between scans")
        if info.end_time_ns > 0 and not info.end_time_ns < new.end_time_ns:
            raise ValueError("scan time must increase")
        self.info = ScanInfo(new.end_time_ns, new.col_dtime, new.range_scale, new.col_span)

    def valid_range(self, border: int) -> tuple[int, int]:
        """Column range of the current span that keeps ``border`` away from the edges."""
        if border < 0:
            raise ValueError("border must be non-negative")
        start, stop = self.span
        if start == 0:
            start += border
        if stop == self.cols:
            stop -= border
        return (start, stop)

    def fill_holes(self) -> int:
        """Fill single-pixel range holes between two valid neighbours."""
        start, stop = self.valid_range(1)
        if start >= stop:
            return 0
        r = self.data["r16u"]
        s = self.data["s16u"]
        left = slice(start - 1, stop - 1)
        mid = slice(start, stop)
        right = slice(start + 1, stop + 1)
        mask = (r[:, mid] == 0) & (r[:, left] > 0) & (r[:, right] > 0)
        r_fill = r[:, left] // 2 + r[:, right] // 2
        s_fill = s[:, left] // 2 + s[:, right] // 2
        r[:, mid] = np.where(mask, r_fill, r[:, mid])
        s[:, mid] = np.where(mask, s_fill, s[:, mid])
        return int(np.count_nonzero(mask))

    def calc_range_grad2(self) -> None:
        """Absolute scaled second derivative of range along columns into ``ddrdu``."""
        start, stop = self.valid_range(1)
        if start >= stop:
            return
        r = self.data["r16u"].astype(np.float32)
        mid = r[:, start:stop]
        left = r[:, start - 1 : stop - 1]
        right = r[:, start + 1 : stop + 1]
        denom = mid * _R_MAX_INV + np.float32(self.info.range_scale)
        with np.errstate(divide="ignore", invalid="ignore"):
            ddr = np.abs((left + right - mid - mid) / denom)
        ddr[mid == 0] = np.nan
        self.ddrdu[:, start:stop] = ddr

    def calc_signal_grad(self) -> None:
        """Range-weighted signal gradient along columns into ``dsdu``."""
        start, stop = self.valid_range(2)
        if start >= stop:
            return
        cols = np.arange(start, stop)
        r = self.data["r16u"].astype(np.float32)
        sig = self.data["s16u"].astype(np.float32)
        with np.errstate(divide="ignore", invalid="ignore"):
            s = np.square(r / np.float32(self.info.range_scale)) * sig / np.float32(100.0)
            s = np.nan_to_num(s, nan=0.0, posinf=0.0, neginf=0.0)
        l2, l1, r1, r2 = (s[:, cols + k] for k in (-2, -1, 1, 2))
        grad = np.abs(r2 + r1 - l1 - l2) / np.float32(4.0)
        skip = (
            self.bad_mask()[:, cols] | (l2 == 0) | (l1 == 0) | (r1 == 0) | (r2 == 0)
        )
        grad = np.where(skip, 0.0, grad)
        self.dsdu[:, cols] = np.clip(grad, 0, np.iinfo(np.uint16).max).astype(np.uint16)


def make_test_scan_data(size, range_: float = 2.0) -> np.ndarray:
    """Points on a sphere of radius ``range_`` covering +-45 degrees elevation."""
    width, height = (int(v) for v in size)
    pi = np.float32(np.pi)
    rng = np.float32(range_)
    azim_delta = pi * np.float32(2.0) / np.float32(width)
    elev_max = pi / np.float32(4.0)
    elev_delta = elev_max * np.float32(2.0) / np.float32(height - 1)

    elev = (elev_max - np.arange(height, dtype=np.float32) * elev_delta)[:, None]
    azim = (pi * np.float32(2.0) - np.arange(width, dtype=np.float32) * azim_delta)[None, :]

    data = np.zeros((height, width), dtype=SCAN_DTYPE)
    data["x"] = np.cos(elev) * np.cos(azim) * rng
    data["y"] = np.cos(elev) * np.sin(azim) * rng
    data["z"] = np.broadcast_to(np.sin(elev) * rng, (height, width))
    data["r16u"] = np.uint16(np.float32(512) * rng)
    data["s16u"] = 512
    return data


def make_test_scan(size, range_: float = 2.0) -> LidarScan:
    width = int(size[0])
    info = ScanInfo(
        end_time_ns=1,
        col_dtime=1.0 / width,
        range_scale=512.0,
        col_span=(0, width),
    )
    return LidarScan(make_test_scan_data(size, range_), info)


def make_test_sweep(size, range_: float = 2.0) -> LidarSweep:
    sweep = LidarSweep(size)
    sweep.add(make_test_scan(size, range_))
    return sweep