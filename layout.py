import logging
from typing import Iterable, Sequence

import numpy as np

import fingermap
from fingermap import NUM_KEYS, Fingermap, Key

logger = logging.getLogger(__name__)

default_lower = """`1234567890-=qwertyuiop[]\\asdfghjkl;'zxcvbnm,./"""
default_upper = """~!@#$%^&*()_+QWERTYUIOP{}|ASDFGHJKL:"ZXCVBNM<>?"""
_shifted = dict(zip(default_lower, default_upper))

NULL = "\0"

# Offsets of the 36 keys inside one line of a layout file. The groups are
# separated by a single space: 12 upper keys, home row, bottom row, then
# the two stretch keys followed by the six thumb keys.
LAYOUT_FILE_IDXS = (
    tuple(range(0, 12)) + tuple(range(13, 21))
    + tuple(range(22, 30)) + tuple(range(31, 39))
)
# The upper layer starts on the second line
UPPER_OFFSET = 40

display_names = {
    " ": "␣",
    "\n": "⏎",
    NULL: "·",
}

def shift_char(char: str) -> str:
    if char in _shifted:
        return _shifted[char]
    return char.upper() if len(char.upper()) == 1 else char

class PositionMap:
    """Character to key lookup for one layout state."""

    def __init__(self, layout_: "Layout") -> None:
        self.keys = {} # type: dict[str, Key]
        for layer in (layout_.lower, layout_.upper):
            for pos, char in enumerate(layer):
                if char == NULL or ord(char) >= 128:
                    continue
                self.keys[char] = layout_.fingermap.keys[pos]

    def lookup(self, ngram: str) -> tuple[int, ...] | None:
        """Positions of each character, or None if any is unmapped."""
        try:
            return tuple(self.keys[char].pos for char in ngram)
        except KeyError:
            return None

    def __getitem__(self, char: str) -> Key:
        return self.keys[char]

    def __contains__(self, char: str) -> bool:
        return char in self.keys

    def __len__(self) -> int:
        return len(self.keys)

class Layout:

    def __init__(self, lower: Iterable[str], upper: Iterable[str],
                 name: str = "", fingermap_: Fingermap = None) -> None:
        self.name = name
        self.fingermap = (fingermap_ if fingermap_ is not None
            else fingermap.get_fingermap())
        self.lower = list(lower)
        self.upper = list(upper)
        if len(self.lower) != NUM_KEYS or len(self.upper) != NUM_KEYS:
            raise ValueError(
                f"Layout needs {NUM_KEYS} keys per layer, got "
                f"{len(self.lower)} and {len(self.upper)}")

    @classmethod
    def from_string(cls, s: str, name: str = "") -> "Layout":
        """Both layers from the file format, the upper layer on the second
        line. Offsets past the end of the text are left empty."""
        lower = [_char_at(s, i) for i in LAYOUT_FILE_IDXS]
        upper = [_char_at(s, i + UPPER_OFFSET) for i in LAYOUT_FILE_IDXS]
        return cls(lower, upper, name)

    @classmethod
    def from_lower_string(cls, s: str, name: str = "") -> "Layout":
        """Lower layer from the file format. The upper layer is derived by
        shifting each key."""
        lower = [_char_at(s, i) for i in LAYOUT_FILE_IDXS]
        upper = [shift_char(char) for char in lower]
        return cls(lower, upper, name)

    def copy(self) -> "Layout":
        return Layout(self.lower, self.upper, self.name, self.fingermap)

    def swap(self, i: int, j: int):
        """Swaps both layers at once, so shifted pairs stay on one key."""
        self.lower[i], self.lower[j] = self.lower[j], self.lower[i]
        self.upper[i], self.upper[j] = self.upper[j], self.upper[i]

    def position_map(self) -> PositionMap:
        return PositionMap(self)

    def to_string(self) -> str:
        """File format, both layers."""
        return "\n".join(_file_line(layer)
            for layer in (self.lower, self.upper)) + "\n"

    def rows(self, layer: Sequence[str] = None) -> list[list[str]]:
        """Display grid with 8 columns per row. Empty cells are ""."""
        if layer is None:
            layer = self.lower
        rows = [] # type: list[list[str]]
        last_row = None
        for key in self.fingermap.keys:
            if (key.row, key.center) != last_row:
                rows.append([""] * 8)
                last_row = (key.row, key.center)
            rows[-1][key.col] = display_names.get(layer[key.pos], layer[key.pos])
        return rows

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Layout):
            return NotImplemented
        return (self.lower == other.lower and self.upper == other.upper
            and self.fingermap is other.fingermap)

    def __getstate__(self):
        # geometry is shared per process, so only its name travels
        return {
            "name": self.name,
            "fingermap": self.fingermap.name,
            "lower": self.lower,
            "upper": self.upper,
        }

    def __setstate__(self, state):
        self.name = state["name"]
        self.fingermap = fingermap.get_fingermap(state["fingermap"])
        self.lower = state["lower"]
        self.upper = state["upper"]

    def __str__(self) -> str:
        return "\n".join(
            " ".join(f"{cell:1}" for cell in row).rstrip()
            for row in self.rows())

    def __repr__(self) -> str:
        return f"Layout({self.name!r}, {''.join(self.lower)!r})"

def _char_at(s: str, i: int):
    return s[i] if i < len(s) else NULL

def _file_line(layer: Sequence[str]):
    line = [" "] * (LAYOUT_FILE_IDXS[-1] + 1)
    for pos, i in enumerate(LAYOUT_FILE_IDXS):
        line[i] = layer[pos]
    return "".join(line)

def shuffle(layout_: Layout, swaps: int,
            rng: np.random.Generator) -> list[tuple[int, int]]:
    """Applies `swaps` random transpositions between swappable positions.
    i == j is allowed and does nothing.

    Returns the pairs in the order applied. Undo by swapping them again in
    reverse order."""
    applied = []
    swappable = layout_.fingermap.swappable_positions()
    for _ in range(swaps):
        i = swappable[int(rng.integers(len(swappable)))]
        j = swappable[int(rng.integers(len(swappable)))]
        layout_.swap(i, j)
        applied.append((i, j))
    return applied

BASE = Layout.from_string(
    "qjxzkv,oufcl yaeidhtn ';.pbmrs wg\0 \0\0-\0\n"
    "QJXZKV<OUFCL YAEIDHTN \":>PBMRS WG\0\n\0\0_\0",
    "base"
)

def default_layout() -> Layout:
    return BASE.copy()

def read_layout(filename: str) -> Layout:
    """Reads a layout file. Text longer than one line holds both layers,
    otherwise the upper layer is derived from the lower one.

    Falls back to the base layout if the file can't be used."""
    if not filename:
        return default_layout()
    try:
        with open(filename, encoding="utf-8") as file:
            s = file.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read layout {filename} ({e}), "
            "reverting to base layout")
        return default_layout()
    if not s.strip():
        logger.warning(f"Layout {filename} is empty, reverting to base layout")
        return default_layout()
    if len(s) > UPPER_OFFSET:
        return Layout.from_string(s, filename)
    return Layout.from_lower_string(s, filename)
