import math

import pytest

from panolidar.proj import Projection, deg2rad, is_pix_bad


def test_ctor():
    p = Projection((1024, 64))
    assert p.rows == 64
    assert p.cols == 1024
    assert len(p.elevs) == 64
    assert len(p.azims) == 1024
    assert "64x1024" in repr(p)


@pytest.fixture
def proj8():
    return Projection((8, 8), deg2rad(70.0))


def test_elevs_and_azims(proj8):
    p = proj8
    assert p.elev_max == pytest.approx(deg2rad(35.0))
    assert p.elev_delta == pytest.approx(deg2rad(10.0))
    assert p.elevs[0].sin == pytest.approx(math.sin(deg2rad(35.0)))
    assert p.elevs[0].cos == pytest.approx(math.cos(deg2rad(35.0)))
    assert p.elevs[-1].sin == pytest.approx(math.sin(deg2rad(-35.0)))
    assert p.elevs[-1].cos == pytest.approx(math.cos(deg2rad(-35.0)))

    assert p.azim_delta == pytest.approx(deg2rad(45.0))
    assert p.azims[0].sin == pytest.approx(math.sin(deg2rad(0.0)))
    assert p.azims[0].cos == pytest.approx(math.cos(deg2rad(0.0)))
    assert p.azims[-1].sin == pytest.approx(math.sin(deg2rad(45.0)))
    assert p.azims[-1].cos == pytest.approx(math.cos(deg2rad(45.0)))


@pytest.mark.parametrize(
    "deg, row",
    [
        (45.00, -1),
        (40.01, -1),
        (39.99, 0),
        (35.00, 0),
        (30.01, 0),
        (29.99, 1),
        (25.00, 1),
        (20.01, 1),
        (0.01, 3),
        (-0.01, 4),
        (-30.01, 7),
        (-35.00, 7),
        (-39.99, 7),
        (-40.01, 8),
        (-45.00, 8),
    ],
)
def test_to_row(proj8, deg, row):
    assert proj8.to_row(math.sin(deg2rad(deg)), 1) == row


@pytest.mark.parametrize(
    "deg, col",
    [(0, 8), (0.01, 8), (44.99, 7), (45, 7), (45.01, 7), (180, 4), (315, 1), (359, 0)],
)
def test_to_col(proj8, deg, col):
    rad = deg2rad(deg)
    assert proj8.to_col(math.cos(rad), math.sin(rad)) == col


def test_vfov_too_big():
    with pytest.raises(ValueError):
        Projection((8, 8), deg2rad(130.0))


def test_size_too_small():
    with pytest.raises(ValueError):
        Projection((1, 8))


@pytest.mark.parametrize("row, col", [(0, 0), (3, 5), (63, 1023), (40, 512)])
def test_backward_forward_round_trip(row, col):
    p = Projection((1024, 64))
    pt = p.backward(row, col, 10.0)
    assert math.sqrt(float(pt @ pt)) == pytest.approx(10.0)
    assert p.forward(pt[0], pt[1], pt[2], 10.0) == (col, row)


def test_forward_out_of_rows_is_bad(proj8):
    px = proj8.forward(0.0, 0.0, 1.0, 1.0)
    assert px[0] == -1
    assert is_pix_bad(px)


def test_backward_out_of_bounds(proj8):
    with pytest.raises(IndexError):
        proj8.backward(8, 0, 1.0)


def test_is_pix_bad():
    assert is_pix_bad((-1, 3))
    assert is_pix_bad((3, -1))
    assert not is_pix_bad((0, 0))