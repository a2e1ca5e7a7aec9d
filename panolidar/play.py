"""Time range gradients and grid selection on a synthetic sweep and build a test pano."""

from __future__ import annotations

import argparse
import statistics
import time
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager

from panolidar.grid import SweepGrid
from panolidar.pano import make_test_pano
from panolidar.proj import Projection
from panolidar.scan import make_test_sweep


class _TimerSummary:
    def __init__(self, name: str) -> None:
        self.name = name
        self.stats: dict[str, list[float]] = defaultdict(list)

    @contextmanager
    def scoped(self, key: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.stats[key].append(time.perf_counter() - start)

    def report(self) -> str:
        lines = [f"Timer summary [{self.name}]"]
        for key, durations in sorted(self.stats.items()):
            lines.append(
                f"  {key}: n={len(durations)}, "
                f"mean={statistics.fmean(durations) * 1e3:.3f}ms, "
                f"min={min(durations) * 1e3:.3f}ms, max={max(durations) * 1e3:.3f}ms"
            )
        return "\n".join(lines)


def _parse_args(argv):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--tbb", action="store_true", help="use parallel execution")
    parser.add_argument("--rep", type=int, default=1, help="repetitions")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    timers = _TimerSummary("rofl/gicp")

    print(f"tbb: {int(args.tbb)}")
    print(f"rep: {args.rep}")

    sweep = make_test_sweep((1024, 64), 20.0)
    for _ in range(args.rep):
        with timers.scoped("RangeGrad"):
            sweep.calc_range_grad2()
    print(repr(sweep))

    grid = SweepGrid()
    grid.allocate(sweep.size)
    n_sel = 0
    for _ in range(args.rep):
        with timers.scoped("GridSelect"):
            n_sel = grid.select(sweep)
    print(f"n_sel: {n_sel}")

    lidar = Projection((1024, 256))
    print(repr(lidar))
    pano = make_test_pano(lidar.size, 20.0)
    pano.id = 0
    print(repr(pano))

    print(timers.report())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())