"""Depth panoramas: a fused range/signal image built from lidar sweeps."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from panolidar.proj import Projection, is_pix_bad
from panolidar.scan import LidarSweep
from panolidar.transform import SE3

RANGE_SCALE = 512.0
PANO_DTYPE = np.dtype(
    [("r16u", "<u2"), ("s16u", "<u2"), ("info", "<u2"), ("g16u", "<u2")]
)
_U16_MAX = 65535


def _to_u16(value: float) -> int:
    return min(_U16_MAX, max(0, int(value)))


@dataclass
class PanoCfg:
    max_info: int = 10  # max info per pixel
    min_range: float = 1.0
    max_range: float = 100.0
    fuse_rel_tol: float = 0.05
    fuse_abs_tol: float = 0.5

    def check(self) -> PanoCfg:
        if self.max_info <= 0:
            raise ValueError("max_info must be positive")
        if self.min_range <= 0:
            raise ValueError("min_range must be positive")
        if self.max_range <= 0:
            raise ValueError("max_range must be positive")
        if not self.min_range < self.max_range:
            raise ValueError("min_range must be less than max_range")
        if not self.max_range * RANGE_SCALE < _U16_MAX:
            raise ValueError("max_range does not fit in 16 bits at the range scale")
        return self

    def is_range_bad(self, rg: float) -> bool:
        return rg < self.min_range or rg > self.max_range


@dataclass
class PanoData:
    """One pano pixel: raw range, signal, info (evidence count) and gradient."""

    r16u: int = 0
    s16u: int = 0
    info: int = 0
    g16u: int = 0

    def empty(self) -> bool:
        return self.r16u == 0 and self.info == 0

    def bad(self) -> bool:
        return self.r16u == 0 or self.info == 0

    def ok(self) -> bool:
        return not self.bad()

    @property
    def range(self) -> float:
        return self.r16u / RANGE_SCALE

    @range.setter
    def range(self, rg: float) -> None:
        self.r16u = _to_u16(rg * RANGE_SCALE)

    def dec_info(self) -> None:
        if self.info > 0:
            self.info -= 1

    def inc_info(self, max_info: int) -> None:
        if self.info < max_info:
            self.info += 1


def fuse(data: PanoData, cfg: PanoCfg, range_: float, signal: int, grad: int) -> bool:
    """Fuse a range measurement into ``data``; returns whether it was accepted."""
    if data.empty():
        data.range = range_
        data.s16u = _to_u16(signal)
        data.info = _to_u16(cfg.max_info // 2)
        return True

    range_old = data.range
    abs_diff = abs(range_ - range_old)
    if range_old:
        rel_diff = abs_diff / range_old
    else:
        rel_diff = math.inf if abs_diff else math.nan

    if abs_diff > cfg.fuse_abs_tol or rel_diff > cfg.fuse_rel_tol:
        data.dec_info()
        return False

    denom = data.info + 1.0
    data.range = (range_old * data.info + range_) / denom
    data.s16u = _to_u16((data.s16u * data.info + signal) / denom)
    data.g16u = _to_u16((data.g16u * data.info + grad) / denom)
    data.inc_info(cfg.max_info)
    return True


def update_buffer(data: PanoData, range_: float, signal: int, info: int) -> bool:
    """Depth-buffer update used when rendering one pano into another."""
    if data.r16u == 0 or range_ < data.range:
        # Well estimated pixels keep half their evidence from the new viewpoint
        data.range = range_
        data.info = _to_u16(info // 2)
        data.s16u = _to_u16(signal)
        return True
    return False


def _trig_tables(proj: Projection) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    elevs = np.array(proj.elevs, dtype=float)
    azims = np.array(proj.azims, dtype=float)
    return elevs[:, 0], elevs[:, 1], azims[:, 0], azims[:, 1]


class DepthPano:
    """Depth panorama; ``size`` is ``(width, height)``."""

    def __init__(self, size=(1024, 256), cfg: PanoCfg | None = None) -> None:
        self.cfg = (cfg if cfg is not None else PanoCfg()).check()
        width, height = (int(v) for v in size)
        self.id = -1
        self.time_ns = 0
        self.num_sweeps = 0.0
        self.tf_o_p = SE3.identity()
        self.data = np.zeros((height, width), dtype=PANO_DTYPE)

    def __repr__(self) -> str:
        return (
            f"DepthPano(id={self.id}, size={self.rows}x{self.cols}, "
            f"num_sweeps={self.num_sweeps}, cfg={self.cfg})"
        )

    @property
    def rows(self) -> int:
        return self.data.shape[0]

    @property
    def cols(self) -> int:
        return self.data.shape[1]

    @property
    def size(self) -> tuple[int, int]:
        return (self.cols, self.rows)

    @property
    def nbytes(self) -> int:
        return self.data.nbytes

    def clear(self) -> None:
        self.id = -1
        self.num_sweeps = 0.0
        self.data[...] = 0

    def reset(self, pano_id: int, tf_o_p: SE3 | None = None) -> None:
        self.clear()
        self.id = pano_id
        self.tf_o_p = tf_o_p if tf_o_p is not None else SE3.identity()

    def data_at(self, row: int, col: int) -> PanoData:
        return PanoData(*(int(v) for v in self.data[row, col].item()))

    def set_data(self, row: int, col: int, data: PanoData) -> None:
        self.data[row, col] = (data.r16u, data.s16u, data.info, data.g16u)

    def _check_proj(self, proj: Projection) -> None:
        if tuple(proj.size) != self.size:
            raise ValueError(f"projection size {proj.size} != pano size {self.size}")

    def render_pano(self, other: DepthPano, proj: Projection) -> int:
        """Render a converged pano into this empty one; returns pixels written."""
        self._check_proj(proj)
        if other.id < 0:
            raise ValueError("source pano has no valid id")
        if not other.num_sweeps > 1:
            raise ValueError("source pano needs more than one sweep")
        if self.num_sweeps != 0:
            raise ValueError("target pano must be empty")
        self.num_sweeps += 1

        tf_0_1 = self.tf_o_p.inverse() @ other.tf_o_p
        src = other.data
        keep = (src["r16u"] != 0) & (src["info"] >= self.cfg.max_info // 2)
        rows, cols = np.nonzero(keep)
        rg1 = src["r16u"][rows, cols] / RANGE_SCALE
        elev_sin, elev_cos, azim_sin, azim_cos = _trig_tables(proj)
        r_xy = elev_cos[rows] * rg1
        pts1 = np.stack(
            [r_xy * azim_cos[cols], r_xy * azim_sin[cols], rg1 * elev_sin[rows]], axis=-1
        )
        pts0 = tf_0_1.apply(pts1).reshape(-1, 3)
        rgs0 = np.linalg.norm(pts0, axis=1)

        n = 0
        for pt, rg, r, c in zip(pts0, rgs0, rows, cols):
            rg = float(rg)
            if self.cfg.is_range_bad(rg):
                continue
            px = proj.forward(float(pt[0]), float(pt[1]), float(pt[2]), rg)
            if is_pix_bad(px):
                continue
            col0, row0 = px
            data = self.data_at(row0, col0)
            if update_buffer(data, rg, int(src["s16u"][r, c]), int(src["info"][r, c])):
                self.set_data(row0, col0, data)
                n += 1
        return n

    def add_sweep(self, sweep: LidarSweep, proj: Projection, span) -> int:
        """Fuse sweep columns ``[start, stop)`` into this pano; returns points fused."""
        self._check_proj(proj)
        start, stop = span
        self.num_sweeps += (stop - start) / sweep.cols

        tf_p_o = self.tf_o_p.inverse()
        xyz = sweep.xyz()[:, start:stop].astype(float)
        pts = np.empty_like(xyz)
        for k, tf_o_l in enumerate(sweep.tfs[start:stop]):
            pts[:, k] = (tf_p_o @ tf_o_l).apply(xyz[:, k])

        good = ~sweep.bad_mask()[:, start:stop]
        signal = sweep.data["s16u"][:, start:stop]
        grad = sweep.dsdu[:, start:stop]
        n = 0
        for r, k in zip(*np.nonzero(good)):
            n += self.add_point(pts[r, k], proj, int(signal[r, k]), int(grad[r, k]))
        return n

    def add_point(self, point, proj: Projection, signal: int, grad: int) -> bool:
        """Fuse one point given in the pano frame."""
        pt = np.asarray(point, dtype=float).reshape(3)
        rg = float(np.linalg.norm(pt))
        if math.isnan(rg):
            raise ValueError("point range is NaN")
        if self.cfg.is_range_bad(rg):
            return False
        px = proj.forward(float(pt[0]), float(pt[1]), float(pt[2]), rg)
        if is_pix_bad(px):
            return False
        col, row = px
        data = self.data_at(row, col)
        accepted = fuse(data, self.cfg, rg, signal, grad)
        self.set_data(row, col, data)
        return accepted

    def extract_range(self) -> np.ndarray:
        return self.data["r16u"].copy()

    def extract_signal(self) -> np.ndarray:
        return self.data["s16u"].copy()

    def extract_info(self) -> np.ndarray:
        return self.data["info"].copy()

    def extract_grad(self) -> np.ndarray:
        return self.data["g16u"].copy()


def make_test_pano(size, rg: float = 2.0, info: int = 1) -> DepthPano:
    """Pano filled with constant range ``rg``, ``info`` and signal 512."""
    pano = DepthPano(size)
    if info > pano.cfg.max_info:
        raise ValueError(f"info {info} exceeds max_info {pano.cfg.max_info}")
    pano.data["r16u"] = _to_u16(rg * RANGE_SCALE)
    pano.data["info"] = info
    pano.data["s16u"] = 512
    return pano