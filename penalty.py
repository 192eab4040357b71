"""Biomechanical penalty model.

Every keystroke, every consecutive pair and every consecutive triple of an
n-gram may trigger penalty events. Negative penalties reward comfortable
motions such as inward rolls. The events for a given sequence of positions
only depend on the geometry, so they are computed once and cached.

After the whole table has been scored, balance penalties are added based on
how evenly the load is spread over fingers and hands.
"""

import enum
import functools
import itertools
from typing import NamedTuple

import numpy as np

import layout
from corpus import NgramTable
from fingermap import NUM_KEYS, Finger, Fingermap, Hand, Key, Row

class Category(enum.IntEnum):
    BASE = 0
    SAME_FINGER = 1
    LONG_JUMP_HAND = 2
    LONG_JUMP = 3
    LONG_JUMP_CONSECUTIVE = 4
    PINKY_RING_TWIST = 5
    ROLL_REVERSAL = 6
    LONG_ROLL_OUT = 7
    ALTERNATION = 8
    ROLL_OUT = 9
    ROLL_IN = 10
    LONG_JUMP_SANDWICH = 11
    TWIST = 12
    SAME_FINGER_TRIGRAM = 13
    ROLL_IN_BAD = 14
    UNBALANCED_FINGERS = 15
    UNBALANCED_HAND = 16
    RIGHT_HAND_REDUCTION = 17
    BAD_HAND_SWAP = 18

category_display_names = {
    Category.BASE: "Base",
    Category.SAME_FINGER: "Same finger",
    Category.LONG_JUMP_HAND: "Long jump hand",
    Category.LONG_JUMP: "Long jump",
    Category.LONG_JUMP_CONSECUTIVE: "Long jump consecutive",
    Category.PINKY_RING_TWIST: "Pinky/ring twist",
    Category.ROLL_REVERSAL: "Roll reversal",
    Category.LONG_ROLL_OUT: "Long roll out",
    Category.ALTERNATION: "Alternation",
    Category.ROLL_OUT: "Roll out",
    Category.ROLL_IN: "Roll in",
    Category.LONG_JUMP_SANDWICH: "Long jump sandwich",
    Category.TWIST: "Twist",
    Category.SAME_FINGER_TRIGRAM: "Same finger trigram",
    Category.ROLL_IN_BAD: "Roll in bad",
    Category.UNBALANCED_FINGERS: "Unbalanced fingers",
    Category.UNBALANCED_HAND: "Unbalanced hand",
    Category.RIGHT_HAND_REDUCTION: "Right hand reduction",
    Category.BAD_HAND_SWAP: "Bad hand swap",
}

def category_by_name(name: str) -> Category | None:
    """Accepts display names or enum names, case insensitive."""
    name = name.strip().lower()
    for category, display_name in category_display_names.items():
        if name in (display_name.lower(), category.name.lower()):
            return category
    return None

class PenaltyEvent(NamedTuple):
    category: Category
    penalty: float
    positions: tuple[int, ...]

class KeyPenalty:
    __slots__ = ("name", "show", "times", "total")

    def __init__(self, name: str, show: bool = True) -> None:
        self.name = name
        self.show = show
        self.times = 0.0
        self.total = 0.0

    def jsonable_export(self):
        return {"name": self.name, "show": self.show,
            "times": self.times, "total": self.total}

class PenaltyResult:
    """Accumulated penalties for one layout over one n-gram table."""

    def __init__(self, hidden: frozenset[Category] = frozenset()) -> None:
        self.penalties = [
            KeyPenalty(category_display_names[category], category not in hidden)
            for category in Category
        ]
        self.fingers = [0] * 10
        self.hands = [0] * 2
        self.positions = [0] * NUM_KEYS
        self.position_penalties = [0.0] * NUM_KEYS
        # relations[prev][curr]: penalty of everything typed from prev to curr
        self.relations = [[0.0] * NUM_KEYS for _ in range(NUM_KEYS)]
        # (prev, curr) -> categories that fired there, in order of first use
        self.relation_types: dict[tuple[int, int], list[Category]] = {}
        self.bad_score_total = 0.0
        self.good_score_total = 0.0
        self.total = 0.0
        self.length = 0

    def log(self, category: Category, penalty: float, count: float = 1,
            positions: tuple[int, ...] = ()):
        p = penalty * count
        entry = self.penalties[category]
        if penalty < 0:
            entry.times += count
            entry.total += p
            self.good_score_total += p
        elif penalty > 0:
            entry.times += count
            entry.total += p
            self.bad_score_total += p
        self.total += p
        for pos in positions:
            self.position_penalties[pos] += p
        for prev, curr in itertools.pairwise(positions):
            self.relations[prev][curr] += p
            types = self.relation_types.setdefault((prev, curr), [])
            if category not in types:
                types.append(category)

    def use_key(self, key: Key, count: int):
        self.positions[key.pos] += count
        self.fingers[key.finger_slot] += count
        self.hands[key.hand] += count
        self.length += count

    def scaled(self) -> float:
        return self.total / self.length if self.length else 0.0

    def jsonable_export(self):
        return {
            "total": self.total,
            "scaled": self.scaled(),
            "length": self.length,
            "bad_score_total": self.bad_score_total,
            "good_score_total": self.good_score_total,
            "fingers": self.fingers,
            "hands": self.hands,
            "positions": self.positions,
            "position_penalties": self.position_penalties,
            "relations": self.relations,
            "relation_types": [
                {"prev": prev, "curr": curr,
                    "categories": [int(category) for category in types]}
                for (prev, curr), types in sorted(self.relation_types.items())
            ],
            "penalties": [p.jsonable_export() for p in self.penalties],
        }

# Pair rules. All of these only apply within one hand.

SAME_FINGER_PENALTY = 10.0
LONG_JUMP_HAND_PENALTY = 2.5
LONG_JUMP_PENALTY = 10.0
PINKY_RING_TWIST_PENALTY = 5.0
ALTERNATION_PENALTY = -0.1
LONG_JUMP_SANDWICH_PENALTY = 3.0
SAME_FINGER_TRIGRAM_PENALTY = 5.0

long_jump_rows = {(Row.TOP, Row.BOTTOM), (Row.BOTTOM, Row.TOP)}

long_jump_consecutive_penalties = {2: 3.0, 3: 4.5}

# (prev finger, curr finger, prev row, curr row)
pinky_ring_twists = {
    (Finger.PINKY, Finger.RING, Row.MIDDLE_BOTTOM, Row.MIDDLE_BOTTOM),
    (Finger.PINKY, Finger.RING, Row.BOTTOM, Row.BOTTOM),
    (Finger.PINKY, Finger.RING, Row.MIDDLE_BOTTOM, Row.BOTTOM),
    (Finger.RING, Finger.PINKY, Row.TOP, Row.BOTTOM),
    (Finger.RING, Finger.PINKY, Row.MIDDLE_TOP, Row.BOTTOM),
    (Finger.RING, Finger.PINKY, Row.MIDDLE_BOTTOM, Row.BOTTOM),
    (Finger.RING, Finger.PINKY, Row.TOP, Row.MIDDLE_BOTTOM),
    (Finger.RING, Finger.PINKY, Row.MIDDLE_TOP, Row.MIDDLE_BOTTOM),
}

# row distance -> (category, penalty)
roll_out_penalties = {
    0: (Category.ROLL_OUT, 4.0),
    1: (Category.ROLL_OUT, 6.0),
    2: (Category.LONG_ROLL_OUT, 7.0),
    3: (Category.LONG_ROLL_OUT, 9.0),
}
roll_in_penalties = {
    0: (Category.ROLL_IN, -6.5),
    1: (Category.ROLL_IN, -3.0),
    2: (Category.ROLL_IN_BAD, 3.0),
    3: (Category.ROLL_IN_BAD, 8.0),
}

# Triple rules

# (third < first, first < second, third < second, third is pinky,
#  third is thumb, first and third on one finger), compared by rank
roll_reversal_penalties = {
    (True, True, True, False, False, False): 6.0,
    (False, False, False, True, False, False): 4.0,
    (True, True, True, False, True, False): 4.0,
    (False, False, False, False, False, False): 7.0,
    (True, False, False, False, False, False): 4.0,
    (False, False, False, False, False, True): 2.0,
    (False, True, True, False, False, True): 2.0,
    (False, False, False, True, False, True): 6.0,
    (False, True, True, False, True, True): 2.0,
}

TWIST_PENALTY = 4.0
LONG_TWIST_PENALTY = 7.0

bad_hand_swap_penalties = {1: 5.0, 2: 9.0}

# Balance post-pass
UNBALANCED_FINGERS_WEIGHT = 0.6
UNBALANCED_HAND_WEIGHT = 0.3
RIGHT_HAND_REDUCTION_WEIGHT = 0.8
BALANCE_SCALE = 16.0

def pair_events(prev: Key, curr: Key) -> list[PenaltyEvent]:
    positions = (prev.pos, curr.pos)
    if prev.hand != curr.hand:
        return [PenaltyEvent(Category.ALTERNATION, ALTERNATION_PENALTY,
            positions)]

    events = []
    same_finger = prev.finger == curr.finger
    row_distance = abs(prev.row - curr.row)

    if same_finger and prev.pos != curr.pos:
        events.append(PenaltyEvent(
            Category.SAME_FINGER, SAME_FINGER_PENALTY, positions))

    if (prev.row, curr.row) in long_jump_rows:
        events.append(PenaltyEvent(
            Category.LONG_JUMP_HAND, LONG_JUMP_HAND_PENALTY, positions))
        if same_finger:
            events.append(PenaltyEvent(
                Category.LONG_JUMP, LONG_JUMP_PENALTY, positions))

    if (not prev.finger.is_thumb and not curr.finger.is_thumb
            and abs(prev.finger.rank - curr.finger.rank) == 1
            and row_distance in long_jump_consecutive_penalties
            # reaching down from middle to index is comfortable
            and not (prev.finger == Finger.MIDDLE
                and curr.finger == Finger.INDEX and prev.row < curr.row)):
        events.append(PenaltyEvent(
            Category.LONG_JUMP_CONSECUTIVE,
            long_jump_consecutive_penalties[row_distance], positions))

    if (prev.finger, curr.finger, prev.row, curr.row) in pinky_ring_twists:
        events.append(PenaltyEvent(
            Category.PINKY_RING_TWIST, PINKY_RING_TWIST_PENALTY, positions))

    # rolls are only defined up to three rows apart
    if prev.finger.rank < curr.finger.rank:
        roll = roll_out_penalties.get(row_distance, None)
    elif prev.finger.rank > curr.finger.rank:
        roll = roll_in_penalties.get(row_distance, None)
    else:
        roll = None
    if roll is not None:
        events.append(PenaltyEvent(roll[0], roll[1], positions))

    return events

def triple_events(first: Key, second: Key, third: Key) -> list[PenaltyEvent]:
    positions = (first.pos, second.pos, third.pos)
    events = []

    if first.hand == second.hand == third.hand:
        f, s, t = first.finger.rank, second.finger.rank, third.finger.rank
        reversal = roll_reversal_penalties.get((
            t < f, f < s, t < s,
            third.finger == Finger.PINKY,
            third.finger.is_thumb,
            first.finger == third.finger,
        ), 0.0)
        if reversal:
            events.append(PenaltyEvent(
                Category.ROLL_REVERSAL, reversal, positions))

        fingers = {first.finger, second.finger, third.finger}
        if (len(fingers) == 3 and (first.row < second.row < third.row
                or first.row > second.row > third.row)):
            long_step = (abs(first.row - second.row) > 1
                or abs(second.row - third.row) > 1)
            events.append(PenaltyEvent(
                Category.TWIST,
                LONG_TWIST_PENALTY if long_step else TWIST_PENALTY,
                positions))

        if len(fingers) == 1 and not first.pos == second.pos == third.pos:
            events.append(PenaltyEvent(
                Category.SAME_FINGER_TRIGRAM, SAME_FINGER_TRIGRAM_PENALTY,
                positions))

    if (first.hand == third.hand and first.finger == third.finger
            and abs(first.row - third.row) > 1):
        events.append(PenaltyEvent(
            Category.LONG_JUMP_SANDWICH, LONG_JUMP_SANDWICH_PENALTY,
            positions))

    hand_changes = (first.hand != second.hand) + (second.hand != third.hand)
    if hand_changes in bad_hand_swap_penalties:
        events.append(PenaltyEvent(
            Category.BAD_HAND_SWAP, bad_hand_swap_penalties[hand_changes],
            positions))

    return events

@functools.lru_cache(maxsize=1 << 18)
def stroke_events(fingermap_: Fingermap,
                  positions: tuple[int, ...]) -> tuple[PenaltyEvent, ...]:
    """All penalty events of one n-gram, in scoring order: base costs,
    then pairs, then triples."""
    keys = tuple(fingermap_.keys[pos] for pos in positions)
    events = [PenaltyEvent(Category.BASE, key.base_cost / 5, (key.pos,))
        for key in keys]
    for prev, curr in itertools.pairwise(keys):
        events.extend(pair_events(prev, curr))
    for i in range(len(keys) - 2):
        events.extend(triple_events(*keys[i:i+3]))
    return tuple(events)

def _deviation(usage: list[int], length: int) -> float:
    shares = np.asarray(usage, dtype=float) * 100.0 / length
    return float(np.abs(shares - shares.mean()).sum())

def log_balance(result: PenaltyResult):
    """Load distribution penalties, scaled by the bad score so far. Each
    one feeds into the bad score used by the next."""
    if not result.length:
        return

    fingers = (_deviation(result.fingers, result.length)
        * (UNBALANCED_FINGERS_WEIGHT / len(result.fingers)) / BALANCE_SCALE
        * result.bad_score_total)
    if fingers > 0:
        result.log(Category.UNBALANCED_FINGERS, fingers)

    hands = (_deviation(result.hands, result.length)
        * (UNBALANCED_HAND_WEIGHT / len(result.hands)) / BALANCE_SCALE
        * result.bad_score_total)
    if hands > 0:
        result.log(Category.UNBALANCED_HAND, hands)

    if result.hands[Hand.LEFT] < result.hands[Hand.RIGHT]:
        reduction = (RIGHT_HAND_REDUCTION_WEIGHT / BALANCE_SCALE
            * result.bad_score_total)
        if reduction > 0:
            result.log(Category.RIGHT_HAND_REDUCTION, reduction)

def score(table: NgramTable, layout_: layout.Layout,
          hidden: frozenset[Category] = frozenset()) -> PenaltyResult:
    """Scores a layout over every n-gram of the table. N-grams with a
    character the layout doesn't have are skipped."""
    result = PenaltyResult(hidden)
    position_map = layout_.position_map()
    fingermap_ = layout_.fingermap
    keys = fingermap_.keys
    for ngram, count in table.counts.items():
        positions = position_map.lookup(ngram)
        if positions is None:
            continue
        for pos in positions:
            result.use_key(keys[pos], count)
        for event in stroke_events(fingermap_, positions):
            result.log(event.category, event.penalty, count, event.positions)
    log_balance(result)
    return result
