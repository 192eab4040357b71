import itertools
import math

import numpy as np
import pytest

import analysis
import corpus
import layout
import penalty
from analysis import AnnealSettings, BestLayoutsEntry

sample_text = (
    "the quick brown fox jumps over the lazy dog. "
    "a journey of a thousand miles begins with a single step. "
    "keyboards are typed on by hands, and hands prefer rolls. "
)

@pytest.fixture(scope="module")
def table():
    return corpus.build_ngrams(sample_text, None, 4)

def entry_with_total(total: float) -> BestLayoutsEntry:
    result = penalty.PenaltyResult()
    result.total = total
    return BestLayoutsEntry(layout.default_layout(), result)

def test_temperature_schedule():
    settings = AnnealSettings(cycles=1000, t0=0.02, tf=1e-5)
    assert analysis.temperature(0, settings) == pytest.approx(0.02)
    assert analysis.temperature(1000, settings) == pytest.approx(1e-5)
    assert (analysis.temperature(10, settings)
        > analysis.temperature(500, settings))

def test_acceptance_probability():
    settings = AnnealSettings(cycles=1000)
    assert analysis.acceptance_probability(-0.5, 10, settings) == 1.0
    assert analysis.acceptance_probability(0.0, 999, settings) == 1.0
    early = analysis.acceptance_probability(0.01, 10, settings)
    late = analysis.acceptance_probability(0.01, 900, settings)
    assert 0 < late < early < 1
    assert early == pytest.approx(
        math.exp(-0.01/analysis.temperature(10, settings)))

def test_accept_transition():
    settings = AnnealSettings(cycles=1000)
    rng = np.random.default_rng(0)
    assert analysis.accept_transition(-1.0, 999, settings, rng)
    # hopeless regression at the end of the schedule
    assert not analysis.accept_transition(10.0, 1000, settings, rng)

def test_relative_change():
    assert analysis.relative_change(110.0, 100.0) == pytest.approx(0.1)
    assert analysis.relative_change(90.0, 100.0) == pytest.approx(-0.1)
    assert analysis.relative_change(-90.0, -100.0) == pytest.approx(0.1)
    assert analysis.relative_change(5.0, 0.0) == 5.0

def test_entries_order_by_total():
    a, b, c = entry_with_total(3.0), entry_with_total(1.0), entry_with_total(3.0)
    assert b < a
    assert a == c
    assert sorted([a, b]) == [b, a]

def test_merge_best():
    retained = [entry_with_total(5.0), entry_with_total(3.0)]
    results = [entry_with_total(4.0), entry_with_total(1.0)]
    merged = analysis.merge_best(retained, results, 3)
    assert [e.total for e in merged] == [1.0, 3.0, 4.0]

def test_anneal_best_never_increases(table):
    start = analysis.evaluate(table, layout.default_layout())
    start_lower = list(start.layout.lower)
    settings = AnnealSettings(cycles=80, max_swaps=3)
    bests = []
    cycles = []
    for cycle, temp, delta, accepted, best in analysis.anneal(
            start, table, settings, np.random.default_rng(42)):
        cycles.append(cycle)
        bests.append(best.total)
        assert best.total <= accepted.total
    assert cycles == list(range(1, 81))
    assert all(later <= earlier for earlier, later in zip(bests, bests[1:]))
    assert bests[-1] <= start.total
    assert start.layout.lower == start_lower

def test_anneal_worker(table):
    start = analysis.evaluate(table, layout.default_layout())
    analysis._init_worker(table)
    best = analysis.anneal_worker(
        start, AnnealSettings(cycles=30), np.random.SeedSequence(1))
    assert best.total <= start.total
    assert best.total == pytest.approx(
        penalty.score(table, best.layout).total)

def test_simulate_in_process(table):
    settings = AnnealSettings(cycles=25, max_swaps=2)
    rounds = list(analysis.simulate(
        table, layout.default_layout(), settings, top=3, rounds=2,
        processes=1, entropy=5))
    assert [r for r, _ in rounds] == [0, 1, 2]
    initial = rounds[0][1][0].total
    for _, retained in rounds:
        assert len(retained) == 3
        totals = [e.total for e in retained]
        assert totals == sorted(totals)
    assert rounds[-1][1][0].total <= initial

def test_simulate_with_pool(table):
    settings = AnnealSettings(cycles=10)
    *_, (round_, retained) = analysis.simulate(
        table, layout.default_layout(), settings, top=2, rounds=1,
        processes=2)
    assert round_ == 1
    assert len(retained) == 2
    assert retained[0].total <= retained[1].total
    assert retained[0].layout.fingermap is layout.BASE.fingermap

class RecordingPool:
    """Runs the work in this process and records when it is closed."""

    def __init__(self, pools, processes, initializer, initargs):
        initializer(*initargs)
        self.processes = processes
        self.exited = False
        pools.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.exited = True

    def starmap(self, fn, args):
        return list(itertools.starmap(fn, args))

def test_simulate_closes_pool_when_stopped_early(table, monkeypatch):
    pools = []
    monkeypatch.setattr(analysis.multiprocessing, "Pool",
        lambda *args, **kwargs: RecordingPool(pools, *args, **kwargs))
    rounds = analysis.simulate(
        table, layout.default_layout(), AnnealSettings(cycles=5), top=2,
        rounds=3, processes=2, entropy=1)
    assert next(rounds)[0] == 0
    assert next(rounds)[0] == 1
    pool, = pools
    assert pool.processes == 2
    assert not pool.exited
    rounds.close()
    assert pool.exited
