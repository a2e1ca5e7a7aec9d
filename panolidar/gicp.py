"""Generalized ICP of selected sweep grid points against a window of depth panoramas."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from panolidar.grid import SweepGrid
from panolidar.hess import Hess1, MeanCovar
from panolidar.pano import RANGE_SCALE, DepthPano
from panolidar.proj import Projection, is_pix_bad
from panolidar.pwin import PanoWindow
from panolidar.transform import SE3, hat3

BAD_PIND = 255  # grid point not matched to any pano in the window

# Storage size of one match, used to report allocated bytes
_GICP_MATCH_BYTES = 72


@dataclass
class GicpCfg:
    stop_pos_tol: float = 0.0  # max pos to early stop [m]
    stop_rot_tol: float = 0.0  # max rot to early stop
    max_inner_iters: int = 3  # inner loop optimization
    max_outer_iters: int = 3  # outer loop icp association
    match_half_rows: int = 2  # pano match half rows
    match_half_cols: int = 2  # pano match half cols
    use_all_panos: bool = False  # use only first pano in window

    def check(self) -> GicpCfg:
        if self.stop_pos_tol < 0:
            raise ValueError("stop_pos_tol must be non-negative")
        if self.stop_rot_tol < 0:
            raise ValueError("stop_rot_tol must be non-negative")
        if self.max_inner_iters <= 0:
            raise ValueError("max_inner_iters must be positive")
        if self.max_outer_iters <= 0:
            raise ValueError("max_outer_iters must be positive")
        if self.match_half_rows <= 1:
            raise ValueError("match_half_rows must be greater than 1")
        if self.match_half_cols <= 1:
            raise ValueError("match_half_cols must be greater than 1")
        return self

    def min_area(self) -> int:
        """Half of the match window area plus one."""
        return (
            2 * self.match_half_cols * self.match_half_rows
            + self.match_half_cols
            + self.match_half_rows
            + 2
        )

    def half_px(self) -> tuple[int, int]:
        """``(half_cols, half_rows)``."""
        return (self.match_half_cols, self.match_half_rows)

    def win_size(self) -> tuple[int, int]:
        """Match window ``(width, height)``."""
        return (2 * self.match_half_cols + 1, 2 * self.match_half_rows + 1)


@dataclass(eq=False)
class GicpMatch:
    """Match of one grid point to a window of pano pixels."""

    mc: MeanCovar = field(default_factory=MeanCovar)  # mean and covar in pano frame
    px: tuple[int, int] = (-1, -1)  # pano pixel (x, y)
    weight: float = 0.0  # cost weight
    pano_id: int = -1  # id of the matched pano

    def reset(self) -> None:
        self.pano_id = -1
        self.px = (-1, -1)

    def ok(self) -> bool:
        return self.pano_id >= 0

    def bad(self) -> bool:
        return not self.ok()

    def calc_info(self, cov_l, R_p_l) -> np.ndarray:
        """Weighted information matrix of the combined pano and rotated lidar covariance."""
        R = np.asarray(R_p_l, dtype=float)
        cov = self.mc.covar() + R @ np.asarray(cov_l, dtype=float) @ R.T
        return np.linalg.inv(cov) * self.weight

    def update_hess(self, hess: Hess1, mc_l: MeanCovar, R_p_l, x_pl) -> None:
        """Add this match's cost to ``hess``; ``x_pl`` is the lidar point in pano frame."""
        R = np.asarray(R_p_l, dtype=float)
        W = self.calc_info(mc_l.covar(), R)
        r = self.mc.mean - np.asarray(x_pl, dtype=float)
        J = np.hstack([R @ hat3(mc_l.mean), -R])
        hess.add(J, W, r)


@dataclass
class GicpStatus:
    msg: str = ""
    cost: float = 0.0
    num_panos: int = 0
    num_iters: int = 0
    num_costs: int = 0
    ok: bool = False

    def __repr__(self) -> str:
        return (
            f"GicpStatus(num_panos={self.num_panos}, num_iters={self.num_iters}, "
            f"num_costs={self.num_costs}, costs={self.cost:.3f}, ok={self.ok}, msg={self.msg})"
        )


def _proj_with_border(proj: Projection, pt, rg: float, border) -> tuple[int, int]:
    """Project ``pt`` to a pixel at least ``border`` away from the edges, else (-1, -1)."""
    bad = (-1, -1)
    if not rg > 0:
        return bad
    bx, by = border
    y = proj.to_row(float(pt[2]), rg)
    if y < by or y >= proj.rows - by:
        return bad
    x = proj.to_col(float(pt[0]), float(pt[1]))
    if x < bx or x >= proj.cols - bx:
        return bad
    return (x, y)


class GicpSolver:
    """Builds the rigid registration problem of a sweep grid against a pano window."""

    def __init__(self, cfg: GicpCfg | None = None) -> None:
        self.cfg = (cfg if cfg is not None else GicpCfg()).check()
        self.matches: list[list[GicpMatch]] = []
        self.pinds = np.full((0, 0), BAD_PIND, dtype=np.uint8)
        self._tfs_p_l_all: list[list[SE3]] = []

    def __repr__(self) -> str:
        return f"GicpSolver(cfg={self.cfg})"

    @property
    def rows(self) -> int:
        return self.pinds.shape[0]

    @property
    def cols(self) -> int:
        return self.pinds.shape[1]

    @property
    def size2d(self) -> tuple[int, int]:
        return (self.cols, self.rows)

    def match_at(self, gr: int, gc: int) -> GicpMatch:
        return self.matches[gr][gc]

    def allocate(self, grid_size) -> int:
        """Size matches for a grid of ``(width, height)``; returns bytes allocated."""
        width, height = (int(v) for v in grid_size)
        self.matches = [[GicpMatch() for _ in range(width)] for _ in range(height)]
        self.pinds = np.full((height, width), BAD_PIND, dtype=np.uint8)
        return width * height * _GICP_MATCH_BYTES + self.pinds.nbytes

    def reset(self, start: int, stop: int) -> None:
        """Forget cached matches in grid columns ``[start, stop)``."""
        if start < 0:
            raise ValueError("start must be non-negative")
        if stop > self.cols:
            raise ValueError(f"stop {stop} exceeds grid cols {self.cols}")
        for row in self.matches:
            for match in row[start:stop]:
                match.reset()

    def build_rigid(
        self, grid: SweepGrid, pwin: PanoWindow, proj: Projection, dtf: SE3 | None = None
    ) -> Hess1:
        """Match grid points to the panos and accumulate the Hessian for delta ``dtf``.

        Clears the pano indices first; each point is matched to at most one pano,
        newer panos first once the last pano has enough sweeps.
        """
        if pwin.empty:
            raise ValueError("pano window is empty")
        if grid.size2d != self.size2d:
            raise ValueError(f"grid size {grid.size2d} != match size {self.size2d}")
        if dtf is None:
            dtf = SE3.identity()

        self.pinds.fill(BAD_PIND)
        num = len(pwin)
        favor_newer = num > 1 and pwin.last.num_sweeps >= 20
        order = reversed(range(num)) if favor_newer else range(num)
        self._tfs_p_l_all = [[] for _ in range(num)]

        hess = Hess1()
        for pind in order:
            pano = pwin[pind]
            if pano.id < 0:
                raise ValueError(f"pano at {pind} has no valid id")
            if pano.num_sweeps < 1:
                continue
            hess += self._build_rigid_pano(grid, pano, proj, dtf, pind)
        return hess

    def _build_rigid_pano(
        self, grid: SweepGrid, pano: DepthPano, proj: Projection, dtf: SE3, pind: int
    ) -> Hess1:
        tf_p_o = pano.tf_o_p.inverse()
        tfs_p_l = [tf_p_o @ tf_o_l @ dtf for tf_o_l in grid.tfs]
        self._tfs_p_l_all[pind] = tfs_p_l

        half_px = self.cfg.half_px()
        win_w, win_h = self.cfg.win_size()
        min_area = self.cfg.min_area()

        hess = Hess1()
        for gr, (row_points, row_matches) in enumerate(zip(grid.points, self.matches)):
            for gc, (point, match, tf_p_l) in enumerate(
                zip(row_points, row_matches, tfs_p_l)
            ):
                if not point.ok():
                    continue
                # Already matched to a previous pano
                if self.pinds[gr, gc] != BAD_PIND:
                    continue

                x_pl = tf_p_l.apply(point.mc.mean)
                rg_pl = float(np.linalg.norm(x_pl))
                px_p = _proj_with_border(proj, x_pl, rg_pl, half_px)
                if is_pix_bad(px_p):
                    continue

                R_p_l = tf_p_l.rotation
                if match.pano_id == pano.id and match.px == px_p:
                    # Same pixel in the same pano: reuse the cached match
                    if match.pano_id < 0 or not match.mc.ok():
                        raise RuntimeError("cached match is invalid")
                else:
                    win = (px_p[0] - half_px[0], px_p[1] - half_px[1], win_w, win_h)
                    mc_p, weight = self.extract_pano_win(proj, pano, win, rg_pl)
                    if mc_p.n < min_area:
                        continue
                    match.pano_id = pano.id
                    match.weight = weight
                    match.px = px_p
                    match.mc = mc_p

                match.update_hess(hess, point.mc, R_p_l, x_pl)
                self.pinds[gr, gc] = pind
        return hess

    def extract_pano_win(
        self, proj: Projection, pano: DepthPano, win, rg_l: float
    ) -> tuple[MeanCovar, float]:
        """Mean/covariance of pano points in ``win = (x, y, w, h)`` near range ``rg_l``.

        Returns the mean/covariance and the patch weight.
        """
        x, y, w, h = win
        x0, y0 = max(x, 0), max(y, 0)
        x1, y1 = min(x + w, pano.cols), min(y + h, pano.rows)
        mc = MeanCovar(3)
        if x1 <= x0 or y1 <= y0:
            return mc, 0.0

        width, height = x1 - x0, y1 - y0
        sub = pano.data[y0:y1, x0:x1]
        r16u = sub["r16u"]
        info = sub["info"].astype(np.int64)
        rg_p = r16u / RANGE_SCALE

        wr, wc = np.indices((height, width))
        dist = np.abs(wr - height // 2) + np.abs(wc - width // 2)
        with np.errstate(divide="ignore", invalid="ignore"):
            rel = np.abs(rg_p - rg_l) / rg_l
        keep = (r16u != 0) & (info != 0) & ~(rel > 0.02 * (width + dist))

        for r, c in zip(*np.nonzero(keep)):
            mc.add(proj.backward(y0 + int(r), x0 + int(c), float(rg_p[r, c])))

        total_info = int(info[keep].sum())
        return mc, total_info / (pano.cfg.max_info * width * height)

    def check_early_stop(self, dx, scale: float) -> bool:
        """Whether rotation and translation updates are both below scaled tolerances."""
        dx = np.asarray(dx, dtype=float).reshape(6)
        dr_abs_max = float(np.max(np.abs(dx[:3])))
        dt_abs_max = float(np.max(np.abs(dx[3:])))
        return (
            dr_abs_max < self.cfg.stop_rot_tol * scale
            and dt_abs_max < self.cfg.stop_pos_tol * scale
        )