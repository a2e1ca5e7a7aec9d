"""Selection of flat lidar segments into a coarse grid of points with mean and covariance."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field

import numpy as np

from panolidar.hess import MeanCovar
from panolidar.scan import LidarSweep
from panolidar.transform import SE3

# Storage sizes used to report allocated bytes
_GRID_POINT_BYTES = 64
_SE3F_BYTES = 28


def _is_power_of_2(x: int) -> bool:
    return x > 0 and (x & (x - 1)) == 0


@dataclass
class PixelWidth:
    """Starting pixel and width within one scan line."""

    x: int = 0
    y: int = 0
    w: int = 0

    def px(self) -> tuple[int, int]:
        return (self.x, self.y)

    def px_mid(self) -> tuple[int, int]:
        return (self.x + self.w // 2, self.y)


@dataclass(eq=False)
class GridPoint:
    xyw: PixelWidth = field(default_factory=PixelWidth)
    mc: MeanCovar = field(default_factory=MeanCovar)

    def __repr__(self) -> str:
        return f"GridPoint(x={self.xyw.x}, y={self.xyw.y}, w={self.xyw.w}, n={self.mc.n})"

    @property
    def width(self) -> int:
        return self.xyw.w

    def ok(self) -> bool:
        return self.xyw.w > 0 and self.mc.n >= 3

    def reset(self) -> None:
        self.xyw = PixelWidth()


@dataclass
class GridCfg:
    feat_max_smooth: float = 0.1  # max smoothness score
    feat_min_length: float = 0.5  # min arc length for good point
    feat_min_range: float = 1.0  # min range of center
    feat_nms_dist: float = 1.0  # non-max suppression distance
    feat_min_pixels: int = 4  # min pixels for good cell
    cell_rows: int = 1
    cell_cols: int = 16

    def check(self) -> GridCfg:
        if self.cell_rows <= 0:
            raise ValueError("cell_rows must be positive")
        if self.cell_cols < 8:
            raise ValueError("cell_cols must be at least 8")
        if self.feat_min_range < 0:
            raise ValueError("feat_min_range must be non-negative")
        # Hole filling may leave one invalid pixel, so 4 ensures at least 3 points
        if self.feat_min_pixels < 4:
            raise ValueError("feat_min_pixels must be at least 4")
        if self.feat_max_smooth <= 0:
            raise ValueError("feat_max_smooth must be positive")
        if not _is_power_of_2(self.cell_cols):
            raise ValueError(f"{self.cell_cols} is not power of 2")
        return self


def find_longest_range(ddr, max_ddr: float) -> tuple[int, int]:
    """Longest run of values ``<= max_ddr`` (NaN is bad) as ``(start, stop)``; earliest wins ties."""
    good = np.asarray(ddr, dtype=np.float32).reshape(-1) <= np.float32(max_ddr)
    best = (0, 0)
    for is_good, run in itertools.groupby(enumerate(good), key=lambda iv: bool(iv[1])):
        if not is_good:
            continue
        indices = [i for i, _ in run]
        start, stop = indices[0], indices[-1] + 1
        if stop - start > best[1] - best[0]:
            best = (start, stop)
    return best


def select_from(ddrdu, rect, max_ddr: float) -> PixelWidth:
    """Longest flat run among the rows of ``rect = (x, y, width, height)`` in ``ddrdu``."""
    x, y, width, height = rect
    xyw = PixelWidth()
    for row in range(y, y + height):
        start, stop = find_longest_range(ddrdu[row, x : x + width], max_ddr)
        if stop - start > xyw.w:
            xyw = PixelWidth(start + x, row, stop - start)
    return xyw


def calc_mean_covar(sweep: LidarSweep, xyw: PixelWidth) -> MeanCovar:
    """Mean and covariance of the valid sweep points covered by ``xyw``."""
    mc = MeanCovar(3)
    for rec in sweep.data[xyw.y, xyw.x : xyw.x + xyw.w]:
        # Hole filling may leave a bad point somewhere
        if math.isnan(rec["x"]):
            continue
        mc.add((rec["x"], rec["y"], rec["z"]))
    return mc


class SweepGrid:
    """Grid of cells over a sweep, each reduced to at most one flat point."""

    def __init__(self, cfg: GridCfg | None = None) -> None:
        self.cfg = (cfg if cfg is not None else GridCfg()).check()
        self.span: tuple[int, int] = (0, 0)
        self.points: list[list[GridPoint]] = []
        self.tfs: list[SE3] = []

    def __repr__(self) -> str:
        return f"SweepGrid(grid={self.rows}x{self.cols}, cfg={self.cfg})"

    @property
    def rows(self) -> int:
        return len(self.points)

    @property
    def cols(self) -> int:
        return len(self.points[0]) if self.points else 0

    @property
    def size(self) -> int:
        return self.rows * self.cols

    @property
    def size2d(self) -> tuple[int, int]:
        return (self.cols, self.rows)

    @property
    def cell_size(self) -> tuple[int, int]:
        return (self.cfg.cell_cols, self.cfg.cell_rows)

    def tf_at(self, col: int) -> SE3:
        return self.tfs[col]

    def point_at(self, gr: int, gc: int) -> GridPoint:
        return self.points[gr][gc]

    def allocate(self, sweep_size) -> int:
        """Size the grid for a sweep of ``(width, height)``; returns bytes allocated."""
        width, height = (int(v) for v in sweep_size)
        if height % self.cfg.cell_rows:
            raise ValueError(f"sweep height {height} not divisible by {self.cfg.cell_rows}")
        if width % self.cfg.cell_cols:
            raise ValueError(f"sweep width {width} not divisible by {self.cfg.cell_cols}")
        grid_cols = width // self.cfg.cell_cols
        grid_rows = height // self.cfg.cell_rows
        self.points = [[GridPoint() for _ in range(grid_cols)] for _ in range(grid_rows)]
        self.tfs = [SE3.identity() for _ in range(grid_cols)]
        return grid_rows * grid_cols * _GRID_POINT_BYTES + grid_cols * _SE3F_BYTES

    def select(self, sweep: LidarSweep) -> int:
        """Select a flat point in every cell of the sweep's current span; returns the count."""
        cfg = self.cfg
        if self.rows * cfg.cell_rows != sweep.rows:
            raise ValueError("grid rows do not match sweep rows")
        if self.cols * cfg.cell_cols != sweep.cols:
            raise ValueError("grid cols do not match sweep cols")

        span_start, span_stop = sweep.span
        self.span = (span_start // cfg.cell_cols, span_stop // cfg.cell_cols)

        delta_azimuth = math.pi * 2 / sweep.cols
        # Cols needed at unit range for points to span min_length
        length_over_theta = cfg.feat_min_length / delta_azimuth
        nms_dist_sq = cfg.feat_nms_dist * cfg.feat_nms_dist
        max_smooth = np.float32(cfg.feat_max_smooth)

        n = 0
        for gr, row_points in enumerate(self.points):
            for gc in range(*self.span):
                point = row_points[gc]
                point.reset()

                rect = (gc * cfg.cell_cols, gr * cfg.cell_rows, cfg.cell_cols, cfg.cell_rows)
                xyw = select_from(sweep.ddrdu, rect, max_smooth)

                if xyw.w < cfg.feat_min_pixels:
                    continue

                mid_x, mid_y = xyw.px_mid()
                rg_mid = sweep.range_at(mid_y, mid_x)
                # A bad point has range 0
                if rg_mid <= cfg.feat_min_range:
                    continue

                min_cols = int(length_over_theta / rg_mid)
                if xyw.w < min(cfg.cell_cols - 1, min_cols):
                    continue

                # Distance based suppression, looking only to the left
                if cfg.feat_nms_dist > 0 and gc > 0:
                    left = row_points[gc - 1]
                    if left.ok():
                        rec = sweep.data[mid_y, mid_x]
                        xyz_mid = np.array([rec["x"], rec["y"], rec["z"]], dtype=float)
                        diff = left.mc.mean - xyz_mid
                        if float(diff @ diff) < nms_dist_sq:
                            continue

                point.xyw = xyw
                point.mc = calc_mean_covar(sweep, xyw)
                if not point.ok():
                    continue
                n += 1
        return n

    def make_select_mask(self) -> np.ndarray:
        """uint8 mask over the sweep with 255 on every selected run of pixels."""
        mask = np.zeros(
            (self.cfg.cell_rows * self.rows, self.cfg.cell_cols * self.cols), dtype=np.uint8
        )
        for point in itertools.chain.from_iterable(self.points):
            if point.xyw.w == 0:
                continue
            mask[point.xyw.y, point.xyw.x : point.xyw.x + point.xyw.w] = 255
        return mask

    def num_selected(self) -> int:
        return sum(point.ok() for point in itertools.chain.from_iterable(self.points))