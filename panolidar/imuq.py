"""IMU measurements and a bounded queue of them."""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from panolidar.hess import MeanCovar


def _vec3() -> np.ndarray:
    return np.zeros(3)


@dataclass(eq=False)
class ImuBias:
    acc: np.ndarray = field(default_factory=_vec3)
    gyr: np.ndarray = field(default_factory=_vec3)


@dataclass
class ImuNoise:
    acc_sigma: float = 0.0
    gyr_sigma: float = 0.0
    acc_bias_sigma: float = 0.0
    gyr_bias_sigma: float = 0.0


@dataclass(eq=False)
class ImuData:
    time: float = 0.0
    acc: np.ndarray = field(default_factory=_vec3)
    gyr: np.ndarray = field(default_factory=_vec3)

    def __post_init__(self) -> None:
        self.acc = np.asarray(self.acc, dtype=float).reshape(3)
        self.gyr = np.asarray(self.gyr, dtype=float).reshape(3)

    def has_nan(self) -> bool:
        return bool(
            np.isnan(self.time) or np.isnan(self.acc).any() or np.isnan(self.gyr).any()
        )

    def debiased(self, bias: ImuBias) -> ImuData:
        return ImuData(self.time, self.acc - bias.acc, self.gyr - bias.gyr)


@dataclass
class ImuqCfg:
    bufsize: int = 30
    rate: float = 100.0
    acc_sigma: float = 0.0
    gyr_sigma: float = 0.0
    acc_bias_sigma: float = 0.0
    gyr_bias_sigma: float = 0.0

    def check(self) -> None:
        if self.bufsize <= 0:
            raise ValueError("bufsize must be positive")
        if self.rate <= 0:
            raise ValueError("rate must be positive")


class ImuQueue:
    """Ring buffer of IMU data with bias and noise parameters."""

    def __init__(self, cfg: ImuqCfg | None = None) -> None:
        cfg = cfg if cfg is not None else ImuqCfg()
        self.bias = ImuBias()
        self.noise = ImuNoise(
            cfg.acc_sigma, cfg.gyr_sigma, cfg.acc_bias_sigma, cfg.gyr_bias_sigma
        )
        self.buf: deque[ImuData] = deque(maxlen=cfg.bufsize)

    def __repr__(self) -> str:
        return f"ImuQueue(size={len(self)}, capacity={self.capacity})"

    def __len__(self) -> int:
        return len(self.buf)

    def __getitem__(self, i: int) -> ImuData:
        return self.buf[i]

    @property
    def capacity(self) -> int:
        return self.buf.maxlen

    @property
    def full(self) -> bool:
        return len(self.buf) == self.buf.maxlen

    @property
    def empty(self) -> bool:
        return not self.buf

    @property
    def first(self) -> ImuData:
        return self.buf[0]

    @property
    def last(self) -> ImuData:
        return self.buf[-1]

    def add(self, imu: ImuData) -> bool:
        """Append ``imu``; returns False (and drops it) if it contains NaN."""
        if imu.has_nan():
            return False
        if self.buf and not imu.time > self.buf[-1].time:
            raise ValueError(
                f"imu time {imu.time} is not after last time {self.buf[-1].time}"
            )
        self.buf.append(imu)
        return True

    def find_after(self, t: float) -> int:
        if not self.buf:
            raise ValueError("imu queue is empty")
        return imu_index_after_time(self.buf, t)

    def find_before(self, t: float) -> int:
        if not self.buf:
            raise ValueError("imu queue is empty")
        return imu_index_before_time(self.buf, t)

    def debiased_at(self, i: int) -> ImuData:
        return self[i].debiased(self.bias)

    def calc_acc_mean(self) -> MeanCovar:
        mc = MeanCovar(3)
        for imu in self.buf:
            mc.add(imu.acc)
        return mc

    def calc_gyr_mean(self) -> MeanCovar:
        mc = MeanCovar(3)
        for imu in self.buf:
            mc.add(imu.gyr)
        return mc


def imu_index_after_time(buf: Sequence[ImuData], t: float) -> int:
    """Index of the first imu after ``t``; ``len(buf)`` if all are at or before ``t``."""
    # Searching backwards is fast since the queried time is usually recent
    for i, imu in zip(range(len(buf) - 1, -1, -1), reversed(buf)):
        if imu.time <= t:
            return i + 1
    return 0


def imu_index_before_time(buf: Sequence[ImuData], t: float) -> int:
    """Index of the last imu at or before ``t``; -1 if all are after ``t``."""
    for i, imu in zip(range(len(buf) - 1, -1, -1), reversed(buf)):
        if imu.time <= t:
            return i
    return -1


def make_test_imuq(size: int) -> ImuQueue:
    """Queue of ``size`` zero measurements with times 1 to ``size``."""
    imuq = ImuQueue(ImuqCfg(bufsize=size, rate=1.0))
    for i in range(size):
        imuq.add(ImuData(time=float(i + 1)))
    return imuq