# panolidar

Building blocks for lidar odometry against depth panoramas, written with
NumPy.

## Modules

- `panolidar.scan`: lidar scans stored as structured NumPy arrays
  (`LidarScan`) and a sweep buffer (`LidarSweep`) that scans are copied
  into by column span. The sweep computes second-order range gradients
  (`calc_range_grad2`), signal gradients (`calc_signal_grad`) and fills
  single-pixel holes (`fill_holes`). `make_test_scan` and
  `make_test_sweep` build synthetic scans on a sphere.
- `panolidar.proj`: a panorama projection (`Projection`) with 360 degree
  azimuth and a centred vertical field of view; `forward` maps a point to
  a `(col, row)` pixel and `backward` maps a pixel and range to a point.
  `is_pix_bad` tells whether a pixel is outside the image.
- `panolidar.pano`: depth panoramas (`DepthPano`) holding per-pixel range,
  signal, information count and gradient. Sweeps are fused with
  `add_sweep` / `add_point` (using `fuse`), and one panorama can be
  rendered into an empty one with `render_pano` (using `update_buffer`).
- `panolidar.pwin`: a fixed-capacity window of panoramas (`PanoWindow`)
  with an extra slot that keeps the most recently removed panorama.
- `panolidar.grid`: selection of the longest flat run of pixels in each
  cell of a sweep into a grid of points with mean and covariance
  (`SweepGrid`, `GridCfg`, `find_longest_range`, `select_from`,
  `calc_mean_covar`).
- `panolidar.gicp`: matching of selected grid points to windows of
  panorama pixels and accumulation of the generalized-ICP normal
  equations (`GicpSolver.build_rigid`, `GicpCfg`, `GicpMatch`).
- `panolidar.hess`: 6-DoF normal equations (`Hess1`) with `add`, `+` and
  a Cholesky `solve`, and a running mean and covariance (`MeanCovar`).
- `panolidar.imuq`: IMU measurements (`ImuData`) and a bounded queue
  (`ImuQueue`) with time lookups (`find_after`, `find_before`) and
  mean accelerations and angular rates.
- `panolidar.transform`: rigid transforms (`SE3`) with composition via
  `@`, inversion, the exponential map (`from_rotvec`) and `hat3`.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Example

Selecting grid points from a synthetic sweep:

```python
from panolidar.grid import GridCfg, SweepGrid
from panolidar.scan import make_test_sweep

sweep = make_test_sweep((1024, 64), 20.0)
sweep.calc_range_grad2()

grid = SweepGrid(GridCfg())
grid.allocate(sweep.size)
n_selected = grid.select(sweep)
```

Projecting a point into a panorama and back:

```python
from panolidar.proj import Projection, is_pix_bad

proj = Projection((1024, 256), 0.0)
px = proj.forward(1.0, 0.0, 0.0, 1.0)
if not is_pix_bad(px):
    col, row = px
    point = proj.backward(row, col, 1.0)
```

One registration step against a panorama window:

```python
from panolidar.gicp import GicpSolver

solver = GicpSolver()
solver.allocate(grid.size2d)
hess = solver.build_rigid(grid, pwin, proj)  # pwin: a PanoWindow with panos added
dx = hess.solve()  # [rotation, translation] update
```

## Command line

`panolidar-play` builds a synthetic sweep, times range-gradient
computation and grid selection, builds a test panorama and prints a
timing summary:

```
panolidar-play --rep 10
```

`--rep` sets the number of repetitions. `--tbb` is accepted and echoed;
all computation runs in a single thread.

## What it does not do

The package provides the pieces of an odometry pipeline, not the pipeline
itself. There is no trajectory model or IMU-based motion prediction, so
`GicpSolver` only builds the normal equations for one step; iterating
`build_rigid` and `Hess1.solve` and applying the update is left to the
caller. There is no driver that feeds live sensor data, no visualization
and no storage of maps or trajectories.