import enum
from typing import NamedTuple

NUM_KEYS = 36

class Hand(enum.IntEnum):
    LEFT = 0
    RIGHT = 1

class Finger(enum.IntEnum):
    THUMB = 0
    INDEX = 1
    MIDDLE = 2
    RING = 3
    PINKY = 4
    THUMB_BOTTOM = 5

    @property
    def rank(self) -> int:
        """Distance from the thumb. Rolls go outward as rank increases."""
        return 0 if self is Finger.THUMB_BOTTOM else int(self)

    @property
    def is_thumb(self) -> bool:
        return self in (Finger.THUMB, Finger.THUMB_BOTTOM)

class Row(enum.IntEnum):
    TOP = 0
    MIDDLE_TOP = 1
    MIDDLE_BOTTOM = 2
    BOTTOM = 3
    THUMB = 4

class Key(NamedTuple):
    pos: int
    hand: Hand
    finger: Finger
    row: Row
    center: bool
    base_cost: float
    col: int # display column, 0 to 7

    @property
    def swappable(self) -> bool:
        return self.row != Row.THUMB

    @property
    def finger_slot(self) -> int:
        """Index into per-finger usage arrays, pinky to thumb per hand."""
        return self.hand * 5 + _slot_in_hand[self.finger]

_slot_in_hand = {
    Finger.PINKY: 0,
    Finger.RING: 1,
    Finger.MIDDLE: 2,
    Finger.INDEX: 3,
    Finger.THUMB: 4,
    Finger.THUMB_BOTTOM: 4,
}

finger_names = (
    "left pinky", "left ring", "left middle", "left index", "left thumb",
    "right pinky", "right ring", "right middle", "right index", "right thumb",
)
hand_names = ("left hand", "right hand")

_finger_codes = {
    "T": Finger.THUMB,
    "I": Finger.INDEX,
    "M": Finger.MIDDLE,
    "R": Finger.RING,
    "P": Finger.PINKY,
    "B": Finger.THUMB_BOTTOM,
}

# Each line is a row name followed by 8 columns. A key is
# <hand><finger>[*]:<base cost>, where * marks the stretch column.
# "--" leaves the column empty. Keys are numbered in reading order.
dactyl36 = """
TOP            --      LR:4.0   LM:4.25  LI:5.0   RI:5.0   RM:4.25  RR:4.0   --
MIDDLE_TOP     --      LR:0.5   LM:0.6   LI:1.25  RI:3.5   RM:0.6   RR:0.5   --
MIDDLE_BOTTOM  LP:3.0  LR:0.3   LM:0.3   LI:1.0   RI:3.0   RM:0.3   RR:0.3   RP:3.0
BOTTOM         LP:3.0  LR:1.0   LM:1.0   LI:1.25  RI:3.5   RM:1.0   RR:1.0   RP:3.0
BOTTOM         --      --       --       LI*:5.0  RI*:5.0  --       --       --
THUMB          --      LB:4.0   LT:0.2   LB:5.0   RB:5.0   RT:0.25  RB:4.0   --
"""

class Fingermap:
    """Immutable key geometry. Built once per name and shared by every
    layout that uses it."""

    loaded = {} # dict of fingermaps

    def __init__(self, name: str, s: str) -> None:
        self.name = name
        self.keys = () # type: tuple[Key, ...]
        self.build_from_string(s)

    def build_from_string(self, s: str):
        keys = []
        for line in s.splitlines():
            tokens = line.split()
            if not tokens:
                continue
            row = Row[tokens[0]]
            for col, token in enumerate(tokens[1:]):
                if token == "--":
                    continue
                code, cost = token.split(":")
                hand = Hand.LEFT if code[0] == "L" else Hand.RIGHT
                keys.append(Key(
                    len(keys), hand, _finger_codes[code[1]], row,
                    code.endswith("*"), float(cost), col))
        if len(keys) != NUM_KEYS:
            raise ValueError(
                f"Fingermap {self.name} has {len(keys)} keys, "
                f"expected {NUM_KEYS}")
        self.keys = tuple(keys)

    def swappable_positions(self) -> tuple[int, ...]:
        return tuple(key.pos for key in self.keys if key.swappable)

    def __getitem__(self, pos: int) -> Key:
        return self.keys[pos]

    def __len__(self) -> int:
        return len(self.keys)

    def __repr__(self) -> str:
        return f"Fingermap({self.name!r})"

builtin_fingermaps = {
    "dactyl36": dactyl36,
}

def get_fingermap(name: str = "dactyl36") -> Fingermap:
    if name not in Fingermap.loaded:
        Fingermap.loaded[name] = Fingermap(name, builtin_fingermaps[name])
    return Fingermap.loaded[name]
