import pytest

import fingermap
from fingermap import NUM_KEYS, Finger, Hand, Row

def test_geometry_shape():
    fm = fingermap.get_fingermap()
    assert len(fm) == NUM_KEYS
    assert [key.pos for key in fm.keys] == list(range(NUM_KEYS))
    assert fm.swappable_positions() == tuple(range(30))
    assert all(key.row == Row.THUMB for key in fm.keys[30:])

def test_geometry_is_shared():
    assert fingermap.get_fingermap() is fingermap.get_fingermap("dactyl36")

def test_base_costs():
    costs = [key.base_cost for key in fingermap.get_fingermap().keys]
    assert costs[:6] == [4.0, 4.25, 5.0, 5.0, 4.25, 4.0]
    assert costs[12:20] == [3.0, 0.3, 0.3, 1.0, 3.0, 0.3, 0.3, 3.0]
    assert costs[28:30] == [5.0, 5.0]
    assert costs[30:] == [4.0, 0.2, 5.0, 5.0, 0.25, 4.0]

def test_stretch_column():
    keys = fingermap.get_fingermap().keys
    assert [key.pos for key in keys if key.center] == [28, 29]
    assert keys[28].finger == Finger.INDEX and keys[28].hand == Hand.LEFT
    assert keys[29].finger == Finger.INDEX and keys[29].hand == Hand.RIGHT

def test_finger_slots():
    keys = fingermap.get_fingermap().keys
    assert keys[12].finger_slot == 0 # left pinky
    assert keys[13].finger_slot == 1
    assert keys[15].finger_slot == 3
    assert keys[31].finger_slot == 4 # left thumb
    assert keys[30].finger_slot == 4 # left thumb bottom
    assert keys[19].finger_slot == 5 # right pinky
    assert keys[34].finger_slot == 9

def test_finger_rank():
    assert Finger.THUMB.rank == Finger.THUMB_BOTTOM.rank == 0
    assert Finger.INDEX.rank < Finger.MIDDLE.rank < Finger.RING.rank
    assert Finger.RING.rank < Finger.PINKY.rank
    assert Finger.THUMB_BOTTOM.is_thumb and not Finger.INDEX.is_thumb

def test_wrong_key_count():
    with pytest.raises(ValueError):
        fingermap.Fingermap("broken", "TOP LI:1.0 RI:1.0")
