# Human-readable summaries of scored layouts, and run snapshots.

import datetime
import json
import logging
import os
import subprocess
from typing import Iterable

import layout
from analysis import BestLayoutsEntry
from fingermap import finger_names, hand_names
from penalty import PenaltyResult, category_display_names

logger = logging.getLogger(__name__)

def grid_lines(layout_: layout.Layout) -> list[str]:
    """Lower and upper layer side by side, split between the hands."""
    lines = []
    for lower, upper in zip(layout_.rows(layout_.lower),
                            layout_.rows(layout_.upper)):
        lines.append(f"{_half_rows(lower)}      {_half_rows(upper)}".rstrip())
    return lines

def _half_rows(row: list[str]):
    cell = lambda c: f"{c if c else ' ':^3}"
    return ("".join(cell(c) for c in row[:4]) + " | "
        + "".join(cell(c) for c in row[4:]))

def penalty_table(result: PenaltyResult, show_all: bool = False) -> list[str]:
    lines = [
        f"{'Name':<24} | {'% times':>8} | {'Avg':>8} | "
            f"{'% Total':>8} | {'Total':>12}",
        "-"*72,
    ]
    for p in result.penalties:
        if not (p.show or show_all):
            continue
        times = 100*p.times/result.length if result.length else 0.0
        avg = p.total/result.length if result.length else 0.0
        share = 100*p.total/result.total if result.total else 0.0
        lines.append(
            f"{p.name:<24} | {times:>8.2f} | {avg:>8.4f} | "
            f"{share:>8.2f} | {p.total:>12.2f}")
    return lines

def usage_lines(result: PenaltyResult) -> list[str]:
    def percent(count):
        return 100*count/result.length if result.length else 0.0
    lines = []
    left = ", ".join(f"{name.split()[1]} {percent(c):.1f}%"
        for name, c in zip(finger_names[:5], result.fingers[:5]))
    right = ", ".join(f"{name.split()[1]} {percent(c):.1f}%"
        for name, c in zip(finger_names[5:], result.fingers[5:]))
    lines.append(f"Fingers: left {left}")
    lines.append(f"         right {right}")
    lines.append("Hands: " + ", ".join(f"{name} {percent(c):.1f}%"
        for name, c in zip(hand_names, result.hands)))
    return lines

def heat_lines(layout_: layout.Layout, result: PenaltyResult) -> list[str]:
    """Share of the total penalty attributed to each key."""
    overall = sum(abs(p) for p in result.position_penalties)
    if not overall:
        return []
    heat = [f"{100*abs(p)/overall:.0f}" for p in result.position_penalties]
    return ["Penalty share per key (%):"] + [
        _half_rows(row) for row in layout_.rows(heat)]

def relation_lines(layout_: layout.Layout, result: PenaltyResult,
                   show_all: bool = False, count: int = 5) -> list[str]:
    """The key pairs with the highest penalty, and what fired on them.
    Hidden categories are left out of the listing unless show_all."""
    worst = sorted(((result.relations[prev][curr], prev, curr)
        for prev, curr in result.relation_types), reverse=True)
    worst = [pair for pair in worst[:count] if pair[0] > 0]
    if not worst:
        return []
    name = lambda pos: layout.display_names.get(
        layout_.lower[pos], layout_.lower[pos])
    lines = ["Worst key pairs:"]
    for total, prev, curr in worst:
        categories = ", ".join(category_display_names[category]
            for category in result.relation_types[(prev, curr)]
            if show_all or result.penalties[category].show)
        lines.append(f"{name(prev)} {name(curr)}  {total:>10.2f}  {categories}")
    return lines

def format_result(entry: BestLayoutsEntry, show_all: bool = False,
                  title: str = None) -> str:
    result = entry.result
    if title is None:
        title = entry.layout.name
    lines = [title] if title else []
    lines.extend(grid_lines(entry.layout))
    lines.append("")
    lines.append(f"total: {result.total:<10.2f}; "
        f"scaled: {result.scaled():<10.4f}")
    lines.append("")
    lines.extend(penalty_table(result, show_all))
    lines.append("")
    lines.extend(usage_lines(result))
    heat = heat_lines(entry.layout, result)
    if heat:
        lines.append("")
        lines.extend(heat)
    relations = relation_lines(entry.layout, result, show_all)
    if relations:
        lines.append("")
        lines.extend(relations)
    return "\n".join(lines)

def _git(*args: str) -> str:
    try:
        out = subprocess.run(
            ("git",) + args, capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError):
        return "unknown"
    return out.stdout.strip() or "unknown"

def save_run_state(entries: Iterable[BestLayoutsEntry],
                   folder: str = "results") -> str:
    """Writes the retained layouts with their scores to
    <folder>/runstate_<timestamp>.json and returns the path."""
    now = datetime.datetime.now()
    os.makedirs(folder, exist_ok=True)
    path_ = os.path.join(
        folder, f"runstate_{now.strftime('%Y%m%d_%H%M%S_%f')}.json")
    with open(path_, "w", encoding="utf-8") as file:
        json.dump({
            "timestamp": now.isoformat(),
            "git_commit": _git("rev-parse", "HEAD"),
            "git_branch": _git("rev-parse", "--abbrev-ref", "HEAD"),
            "layouts": [
                {
                    "name": entry.layout.name,
                    "lower": "".join(entry.layout.lower),
                    "upper": "".join(entry.layout.upper),
                    "penalty": entry.result.jsonable_export(),
                }
                for entry in entries
            ],
        }, file, indent=2)
    logger.info(f"Saved run state to {path_}")
    return path_
