import pytest

from panolidar.pwin import PanoWindow


def test_ctor():
    pwin = PanoWindow(2, (1024, 256))
    assert len(pwin) == 0
    assert pwin.empty is True
    assert pwin.full is False
    assert pwin.capacity == 2


def test_add_and_remove():
    pwin = PanoWindow(2, (1024, 256))

    pwin.add_pano(0, 1)
    pwin.add_pano(1, 2)
    assert len(pwin) == 2
    assert pwin.full is True
    assert pwin[0].id == 0
    assert pwin[1].id == 1
    assert pwin.first.id == 0
    assert pwin.last.id == 1
    assert pwin.removed.id == -1

    pwin.remove_front()
    assert len(pwin) == 1
    assert pwin.full is False

    pwin.add_pano(2, 3)
    assert len(pwin) == 2
    assert pwin.full is True
    assert pwin[0].id == 1
    assert pwin[1].id == 2


def test_removed_slot_holds_removed_pano():
    pwin = PanoWindow(2, (16, 8))
    pwin.add_pano(5, 10)
    removed = pwin.remove_front()
    assert removed.id == 5
    assert pwin.removed.id == 5
    assert pwin.empty


def test_add_to_full_raises():
    pwin = PanoWindow(1, (16, 8))
    pwin.add_pano(0, 1)
    with pytest.raises(ValueError):
        pwin.add_pano(1, 2)


def test_add_bad_time_raises():
    pwin = PanoWindow(2, (16, 8))
    with pytest.raises(ValueError):
        pwin.add_pano(0, 0)


def test_remove_out_of_range():
    pwin = PanoWindow(2, (16, 8))
    with pytest.raises(IndexError):
        pwin.remove_pano_at(0)


def test_iter_and_reset():
    pwin = PanoWindow(3, (16, 8))
    pwin.add_pano(7, 1)
    pwin.add_pano(8, 2)
    assert [p.id for p in pwin] == [7, 8]
    pwin.reset()
    assert len(pwin) == 0
    assert list(pwin) == []


def test_getitem_bounds():
    pwin = PanoWindow(2, (16, 8))
    assert pwin[1].id == -1
    with pytest.raises(IndexError):
        pwin[2]


def test_allocate_bytes_and_sizes():
    pwin = PanoWindow()
    nbytes = pwin.allocate(2, (16, 8))
    assert nbytes == 3 * 16 * 8 * 8
    assert pwin.capacity == 2
    assert pwin[0].size == (16, 8)


def test_resize_default_size():
    pwin = PanoWindow(1)
    assert pwin.capacity == 1
    assert pwin[0].size == (1024, 256)