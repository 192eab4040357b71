import contextlib
import functools
import itertools
import logging
import math
import multiprocessing
import os
from typing import Iterable, Iterator, NamedTuple

import numpy as np

import layout
import penalty
from corpus import NgramTable

logger = logging.getLogger(__name__)

class AnnealSettings(NamedTuple):
    cycles: int = 2000
    max_swaps: int = 2
    t0: float = 0.02
    tf: float = 1e-5
    log_every: int = 1000
    hidden: frozenset = frozenset()

@functools.total_ordering
class BestLayoutsEntry:
    """A layout with its score. Entries order by total penalty only."""

    def __init__(self, layout_: layout.Layout,
                 result: penalty.PenaltyResult) -> None:
        self.layout = layout_
        self.result = result

    @property
    def total(self) -> float:
        return self.result.total

    def __lt__(self, other: "BestLayoutsEntry") -> bool:
        return self.total < other.total

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BestLayoutsEntry):
            return NotImplemented
        return self.total == other.total

    __hash__ = None

    def __repr__(self) -> str:
        return f"BestLayoutsEntry({self.layout!r}, total={self.total:.4f})"

def evaluate(table: NgramTable, layout_: layout.Layout,
             hidden: frozenset = frozenset()) -> BestLayoutsEntry:
    return BestLayoutsEntry(layout_, penalty.score(table, layout_, hidden))

def temperature(cycle: int, settings: AnnealSettings) -> float:
    """Exponential cooling from t0 at cycle 0 to tf at the last cycle."""
    k = math.log(settings.t0/settings.tf)
    return settings.t0*math.exp(-k*cycle/max(settings.cycles, 1))

def acceptance_probability(delta: float, cycle: int,
                           settings: AnnealSettings) -> float:
    """Probability of moving to a candidate whose relative change in total
    penalty is `delta`. Improvements are always taken."""
    if delta <= 0:
        return 1.0
    return math.exp(-delta/temperature(cycle, settings))

def accept_transition(delta: float, cycle: int, settings: AnnealSettings,
                      rng: np.random.Generator) -> bool:
    if delta <= 0:
        return True
    return rng.random() < acceptance_probability(delta, cycle, settings)

def relative_change(candidate: float, accepted: float) -> float:
    if accepted == 0:
        return candidate - accepted
    return (candidate - accepted)/abs(accepted)

def anneal(entry: BestLayoutsEntry, table: NgramTable,
           settings: AnnealSettings, rng: np.random.Generator
           ) -> Iterator[tuple[int, float, float, BestLayoutsEntry,
                               BestLayoutsEntry]]:
    """Yields (cycle, temperature, delta, accepted, best) after every cycle.
    The starting entry is never modified."""
    accepted = entry
    best = entry
    for cycle in range(1, settings.cycles + 1):
        lay = accepted.layout.copy()
        layout.shuffle(lay, int(rng.integers(1, settings.max_swaps + 1)), rng)
        candidate = evaluate(table, lay, settings.hidden)
        if candidate.total < best.total:
            best = candidate

        delta = relative_change(candidate.total, accepted.total)
        if accept_transition(delta, cycle, settings, rng):
            accepted = candidate

        yield cycle, temperature(cycle, settings), delta, accepted, best

# Set once per worker process by the pool initializer
_worker_table = None # type: NgramTable

def _init_worker(table: NgramTable):
    global _worker_table
    _worker_table = table

def anneal_worker(entry: BestLayoutsEntry, settings: AnnealSettings,
                  seed: np.random.SeedSequence) -> BestLayoutsEntry:
    """One full annealing run with its own random stream. Returns the best
    layout seen."""
    rng = np.random.default_rng(seed)
    best = entry
    for cycle, temp, delta, accepted, best in anneal(
            entry, _worker_table, settings, rng):
        if settings.log_every and cycle % settings.log_every == 0:
            logger.debug(
                f"[{os.getpid()}] {cycle/settings.cycles:.0%} progress, "
                f"temperature = {temp:.6f}, delta = {delta:.4f}, "
                f"accepted = {accepted.total:.2f}, best = {best.total:.2f}")
    return best

def merge_best(retained: Iterable[BestLayoutsEntry],
               results: Iterable[BestLayoutsEntry],
               top: int) -> list[BestLayoutsEntry]:
    """Union of both, ascending by total penalty, truncated to `top`."""
    return sorted(
        itertools.chain(retained, results), key=lambda e: e.total)[:top]

def default_processes(top: int) -> int:
    return max(1, min(top, os.cpu_count() or 1))

def simulate(table: NgramTable, start: layout.Layout,
             settings: AnnealSettings, top: int = 4, rounds: int = 5,
             processes: int = 0, entropy: int = None
             ) -> Iterator[tuple[int, list[BestLayoutsEntry]]]:
    """Anneals `top` layouts in parallel per round, then keeps the `top`
    best of everything seen so far. Yields (round, retained) after each
    round, starting with round 0 for the unmodified start layout.

    With processes == 1 the workers run in this process."""
    top = max(1, top)
    initial = evaluate(table, start, settings.hidden)
    retained = [BestLayoutsEntry(start.copy(), initial.result)
        for _ in range(top)]
    yield 0, retained

    seeds = np.random.SeedSequence(entropy)
    if not processes:
        processes = default_processes(top)

    if processes == 1:
        _init_worker(table)
        pool_context = contextlib.nullcontext()
    else:
        pool_context = multiprocessing.Pool(
            processes, initializer=_init_worker, initargs=(table,))

    with pool_context as pool:
        starmap = pool.starmap if pool is not None else itertools.starmap
        for round_ in range(1, rounds + 1):
            args = [(entry, settings, seed)
                for entry, seed in zip(retained, seeds.spawn(len(retained)))]
            # every worker finishes before the merge
            results = list(starmap(anneal_worker, args))
            retained = merge_best(retained, results, top)
            logger.info(f"Round {round_}/{rounds}: best total "
                f"{retained[0].total:.2f}")
            yield round_, retained
