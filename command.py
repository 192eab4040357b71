# `Command`s bundle names/aliases, help-strings, and functionality.
# Also defines all the individual commands in keygen.
# Also contains backend functions which are useful for the commands.

import enum
import json
import logging
import os
from typing import Callable, NamedTuple

import analysis
import corpus
import layout
import penalty
import report
from session import Session

class CommandType(enum.Enum):
    GENERAL = enum.auto()
    DATA = enum.auto()
    ANALYSIS = enum.auto()

class Command:

    def __init__(self, type: CommandType, help: tuple[str, ...],
                 names: tuple[str, ...],
                 fn: Callable[[list[str], Session], int | None]):
        """
        `names` is a list of aliases that the user can use to activate the
        command. The first of these will be use to alphabetize commands.

        The first string of `help` will be used as a brief summary when the
        `help` command is used with no args. The rest will be joined with
        newlines.

        `fn` is the actual function to be run, with parameters being
        `args: list[str]` and `session`. It may return an exit code, None
        meaning success.
        """
        self.names = names
        self.type = type
        self.help = help
        self.fn = fn

commands = list()
by_name = dict()

def register_command(cmd: Command):
    commands.append(cmd)
    for name in cmd.names:
        by_name[name] = cmd

def run_command(name: str, args: list[str], s: Session) -> int:
    cmd = by_name.get(name, None)
    if cmd is None:
        s.say(f"Unrecognized command {name}", logging.WARNING)
        s.output("\n".join(cmd_help_intro([usage])))
        return 2
    if "-h" in args or "--help" in args:
        s.output("\n".join(cmd_help_cmd([], cmd)))
        return 0
    code = cmd.fn(args, s)
    return 0 if code is None else code

usage = "Usage: keygen <command> [args] [options]"

# Option parsing

class Options(NamedTuple):
    top: int
    swaps: int
    processed: bool
    debug: bool

def numopt(value: str | None, name: str, default: int, s: Session) -> int:
    """Positive integer option. Falls back to the default with a warning."""
    try:
        n = int(value)
        if n >= 1:
            return n
    except (TypeError, ValueError):
        pass
    s.say(f"Invalid value {value!r} for {name}, using default {default}",
        logging.WARNING)
    return default

def parse_options(args: list[str], s: Session) -> tuple[list[str], Options]:
    """Splits args into positional args and options."""
    positional = []
    top = s["top"]
    swaps = s["swaps"]
    processed = False
    debug = False
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("-t", "--top", "-s", "--swaps"):
            value = args[i+1] if i + 1 < len(args) else None
            if arg in ("-t", "--top"):
                top = numopt(value, "top", s["top"], s)
            else:
                swaps = numopt(value, "swaps", s["swaps"], s)
            i += 2
            continue
        if arg in ("-p", "--processed"):
            processed = True
        elif arg in ("-d", "--debug"):
            debug = True
        else:
            positional.append(arg)
        i += 1
    return positional, Options(top, swaps, processed, debug)

# Backend

def hidden_categories(s: Session) -> frozenset[penalty.Category]:
    hidden = set()
    for name in s["hidden_categories"]:
        category = penalty.category_by_name(name)
        if category is None:
            s.say(f"Unknown penalty category {name!r} in hidden_categories",
                logging.WARNING)
        else:
            hidden.add(category)
    return frozenset(hidden)

def load_table(source: str, processed: bool, s: Session) -> corpus.NgramTable:
    """Raises corpus.CorpusError if the source can't be read."""
    if processed:
        table = corpus.load_ngram_table(source, s["processed_dir"])
        s.say(f"Loaded {len(table)} {table.n}-grams from "
            f"{corpus.table_path(source, s['processed_dir'])}")
    else:
        table = corpus.load_corpus(
            source, s["swap_chars"], s["ngram_length"])
    if s["precision"]:
        full = table
        table = full.most_common_table(s["precision"])
        s.say(f"Precision: top {s['precision']} n-grams "
            f"({table.completeness(full):.3%})")
    return table

def anneal_settings(s: Session, opts: Options) -> analysis.AnnealSettings:
    return analysis.AnnealSettings(
        cycles=s["cycles"],
        max_swaps=opts.swaps,
        t0=float(s["t0"]),
        tf=float(s["tf"]),
        log_every=s["log_every"],
        hidden=hidden_categories(s),
    )

# Actual commands

def cmd_run(args: list[str], s: Session):
    positional, opts = parse_options(args, s)
    if not positional:
        s.say("Usage: run <corpus> [layout file] [-t n] [-s n] [-p]",
            logging.WARNING)
        return 2
    table = load_table(positional[0], opts.processed, s)
    start = layout.read_layout(positional[1] if len(positional) > 1 else "")
    settings = anneal_settings(s, opts)

    s.say(f"Annealing {opts.top} layouts for {s['rounds']} rounds of "
        f"{settings.cycles} cycles, up to {settings.max_swaps} swaps each")
    retained = []
    for round_, retained in analysis.simulate(
            table, start, settings, opts.top, s["rounds"], s["processes"]):
        if round_ == 0:
            s.output("Initial layout:\n" + report.format_result(retained[0]))

    for i, entry in enumerate(retained):
        s.output("\n" + report.format_result(entry, title=f"#{i+1}"))
    if s["save_snapshots"]:
        report.save_run_state(retained, s["results_dir"])

register_command(Command(
    CommandType.ANALYSIS,
    (
        "run <corpus> [layout file] [-t n] [-s n] [-p]: "
            "Search for better layouts with simulated annealing",
        "Starts from the layout file, or the base layout if none is given.\n"
            "Each round anneals the retained layouts in parallel and keeps "
            "the best n of everything seen (-t, defaults to the top "
            "setting). Candidates are made by up to -s random swaps.\n"
            "With -p, <corpus> names a table saved by prepare.",
    ),
    ("run",),
    cmd_run
))

def cmd_run_ref(args: list[str], s: Session):
    positional, opts = parse_options(args, s)
    if not positional:
        s.say("Usage: run-ref <corpus> [layout files...] [-p]",
            logging.WARNING)
        return 2
    table = load_table(positional[0], opts.processed, s)
    hidden = hidden_categories(s)
    layouts = [layout.default_layout()]
    layouts.extend(layout.read_layout(filename)
        for filename in positional[1:])
    for lay in layouts:
        s.output(report.format_result(analysis.evaluate(table, lay, hidden)))
        s.output("")

register_command(Command(
    CommandType.ANALYSIS,
    (
        "run-ref <corpus> [layout files...] [-p]: "
            "Score the base layout and any given layouts",
        "No searching is done. Useful as a reference point for run.",
    ),
    ("run-ref", "ref"),
    cmd_run_ref
))

def cmd_prepare(args: list[str], s: Session):
    counts = "--counts" in args
    words = "--words" in args
    args = [arg for arg in args if arg not in ("--counts", "--words")]
    positional, _ = parse_options(args, s)
    if not positional:
        s.say("Usage: prepare <corpus> [name] [--counts | --words]",
            logging.WARNING)
        return 2
    filename = positional[0]
    name = (positional[1] if len(positional) > 1
        else os.path.splitext(os.path.basename(filename))[0])
    n = s["ngram_length"]
    text = corpus.read_corpus(filename)
    if counts:
        table = corpus.parse_ngram_counts(text)
    elif words:
        table = corpus.build_word_counts(text, " ", s["swap_chars"])
    else:
        table = corpus.build_ngrams(text, s["swap_chars"], n)
    if counts or words:
        s.say(f"Splitting {len(table)} entries into {n}-grams")
        table = corpus.rewindow(table, n)
    path_ = corpus.save_ngram_table(table, name, s["processed_dir"])
    s.say(f"Saved {len(table)} {table.n}-grams to {path_}")

register_command(Command(
    CommandType.DATA,
    (
        "prepare <corpus> [name] [--counts | --words]: "
            "Count n-grams once and save them",
        "Saved tables go in the processed_dir setting and can be used by "
            "run and run-ref with -p, or combined with merge. The name "
            "defaults to the corpus file name without extension.\n"
            "With --counts the file is a precounted list, one "
            "ngram<tab>count per line. With --words each space separated "
            "word is counted. Either way, entries of another length are "
            "split into windows of the ngram_length setting.",
    ),
    ("prepare",),
    cmd_prepare
))

def cmd_merge(args: list[str], s: Session):
    positional, _ = parse_options(args, s)
    names = [name for arg in positional for name in arg.split(",") if name]
    if len(names) < 2:
        s.say("Usage: merge <name,name,...>", logging.WARNING)
        return 2
    tables = [corpus.load_ngram_table(name, s["processed_dir"])
        for name in names]
    try:
        merged = corpus.merge_ngram_tables(tables)
    except corpus.NgramLengthError as e:
        s.say(str(e), logging.ERROR)
        return 1
    path_ = corpus.save_ngram_table(merged, "_".join(names), s["processed_dir"])
    s.say(f"Merged {len(names)} tables into {path_} "
        f"({len(merged)} {merged.n}-grams)")

register_command(Command(
    CommandType.DATA,
    (
        "merge <name,name,...>: Combine tables saved by prepare",
        "Counts of identical n-grams are summed. The result is saved "
            "under the names joined with underscores.",
    ),
    ("merge",),
    cmd_merge
))

def cmd_set(args: list[str], s: Session):
    if len(args) < 2:
        s.output("\n".join(f"{field}: {json.dumps(value)}"
            for field, value in s.settings.items()))
        return
    field = args[0]
    raw = " ".join(args[1:])
    try:
        value = json.loads(raw)
    except json.decoder.JSONDecodeError:
        value = raw
    if not s.set(field, value):
        s.say(f"Invalid value {raw!r} for {field}", logging.WARNING)
        return 1
    s.save_settings()
    s.say(f"Set {field} to {json.dumps(value)}")

register_command(Command(
    CommandType.GENERAL,
    (
        "set [field value]: Change a setting, or list them all",
        "Values are parsed as json where possible, so lists and objects "
            "can be given as well. Settings are saved to the settings file.",
    ),
    ("set",),
    cmd_set
))

def cmd_help(args: list[str], s: Session):
    help_text = [
        usage,
        "Command <required thing> [optional thing]",
    ]

    if not args:
        help_text = cmd_help_intro(help_text)
    else:
        try:
            cat = CommandType[args[0].upper()]
            help_text = cmd_help_cat(help_text, cat)
        except KeyError:
            cmd: Command = by_name.get(args[0], None)
            if cmd is None:
                s.say("Unrecognized command", logging.WARNING)
                return 2
            help_text = cmd_help_cmd(help_text, cmd)
    s.output("\n".join(help_text))

def cmd_help_intro(l: list[str]):
    for cat in CommandType:
        l.append(f"-----{cat.name.capitalize()}-----")
        l.extend(cmd.help[0] for cmd in sorted(
            (cmd for cmd in commands if cmd.type == cat),
            key=lambda c: c.names[0]))
    l.extend((
        "-----Options-----",
        "-t, --top n: number of layouts kept, and workers per round",
        "-s, --swaps n: most swaps per candidate layout",
        "-p, --processed: read a table saved by prepare instead of a corpus",
        "-d, --debug: show debug logging",
        "-h, --help: show help for the command",
    ))
    return l

def cmd_help_cat(l: list[str], cat: CommandType):
    l.append(f"Commands in category {cat.name}:")
    l.extend(cmd.help[0] for cmd in sorted(
        (cmd for cmd in commands if cmd.type == cat),
        key=lambda c: c.names[0]))
    l.append("Use help <command> to view per-command help")
    return l

def cmd_help_cmd(l: list[str], cmd: Command):
    l.append("")
    l.extend(cmd.help)
    l.append(f"\nAliases: {', '.join(cmd.names)}")
    return l

register_command(Command(
    CommandType.GENERAL,
    ("help [category or command]: List or explain commands",),
    ("help", "h"),
    cmd_help
))
