import math
from collections import deque

import numpy as np
import pytest

from panolidar.imuq import (
    ImuBias,
    ImuData,
    ImuqCfg,
    ImuQueue,
    imu_index_after_time,
    imu_index_before_time,
    make_test_imuq,
)


def _buffer():
    buf = deque(maxlen=5)
    for i in range(5):
        buf.append(ImuData(time=float(i + 1)))
    return buf


def test_imu_queue():
    cfg = ImuqCfg(acc_sigma=1, gyr_sigma=1, acc_bias_sigma=1, gyr_bias_sigma=1)
    imuq = ImuQueue(cfg)
    assert len(imuq) == 0
    assert imuq.full is False
    assert imuq.empty is True
    assert imuq.capacity == cfg.bufsize
    assert imuq.noise.acc_sigma == 1

    d = ImuData(time=1.0)
    assert imuq.add(d) is True
    assert len(imuq) == 1

    bad = ImuData(time=2.0, acc=[math.nan, 0.0, 0.0])
    assert imuq.add(bad) is False
    assert len(imuq) == 1


def test_add_non_increasing_time_raises():
    imuq = ImuQueue()
    imuq.add(ImuData(time=2.0))
    with pytest.raises(ValueError):
        imuq.add(ImuData(time=2.0))


def test_index_after_time_empty():
    assert imu_index_after_time(deque(maxlen=5), 0) == 0


@pytest.mark.parametrize(
    "t, expected", [(0, 0), (0.5, 0), (1, 1), (1.5, 1), (2, 2), (15, 5)]
)
def test_index_after_time(t, expected):
    assert imu_index_after_time(_buffer(), t) == expected


def test_index_before_time_empty():
    assert imu_index_before_time(deque(maxlen=5), 0) == -1


@pytest.mark.parametrize(
    "t, expected", [(0, -1), (0.5, -1), (1, 0), (1.5, 0), (2, 1), (15, 4)]
)
def test_index_before_time(t, expected):
    assert imu_index_before_time(_buffer(), t) == expected


def test_find_on_empty_raises():
    imuq = ImuQueue()
    with pytest.raises(ValueError):
        imuq.find_after(1.0)
    with pytest.raises(ValueError):
        imuq.find_before(1.0)


def test_make_test_imuq():
    imuq = make_test_imuq(4)
    assert imuq.full
    assert imuq.first.time == 1.0
    assert imuq.last.time == 4.0
    assert imuq.find_after(2.5) == 2
    assert imuq.find_before(2.5) == 1


def test_ring_buffer_drops_oldest():
    imuq = ImuQueue(ImuqCfg(bufsize=2))
    for t in (1.0, 2.0, 3.0):
        imuq.add(ImuData(time=t))
    assert [imuq[i].time for i in range(len(imuq))] == [2.0, 3.0]


def test_acc_and_gyr_mean():
    imuq = ImuQueue(ImuqCfg(bufsize=4))
    imuq.add(ImuData(time=1.0, acc=[1.0, 2.0, 3.0], gyr=[0.0, 0.0, 1.0]))
    imuq.add(ImuData(time=2.0, acc=[3.0, 4.0, 5.0], gyr=[0.0, 0.0, 3.0]))
    acc = imuq.calc_acc_mean()
    gyr = imuq.calc_gyr_mean()
    assert acc.n == 2
    assert np.allclose(acc.mean, [2.0, 3.0, 4.0])
    assert np.allclose(gyr.mean, [0.0, 0.0, 2.0])


def test_debiased_at():
    imuq = ImuQueue()
    imuq.add(ImuData(time=1.0, acc=[1.0, 1.0, 1.0], gyr=[2.0, 2.0, 2.0]))
    imuq.bias = ImuBias(acc=np.array([1.0, 0.0, 0.0]), gyr=np.array([0.0, 2.0, 0.0]))
    d = imuq.debiased_at(0)
    assert np.allclose(d.acc, [0.0, 1.0, 1.0])
    assert np.allclose(d.gyr, [2.0, 0.0, 2.0])
    assert d.time == 1.0


def test_cfg_check():
    with pytest.raises(ValueError):
        ImuqCfg(bufsize=0).check()
    with pytest.raises(ValueError):
        ImuqCfg(rate=0.0).check()