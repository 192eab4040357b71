# Turn raw corpus text into n-gram frequencies, and cache them as json.
# Members of NgramTable:
    # n: int - window length
    # counts: Counter[str, int]

from collections import Counter
import json
import logging
import os
from typing import Iterable

logger = logging.getLogger(__name__)

# Folds typographic punctuation and accented letters onto keys the layout
# can actually hold.
DEFAULT_SWAP_CHARS = {
    "\t": " ",
    "‘": "'",
    "’": "'",
    "“": "\"",
    "”": "\"",
    "–": "-",
    "—": "-",
    "…": ".",
    "à": "a", "á": "a", "â": "a", "ä": "a",
    "ç": "c",
    "è": "e", "é": "e", "ê": "e", "ë": "e",
    "ì": "i", "í": "i", "î": "i", "ï": "i",
    "ñ": "n",
    "ò": "o", "ó": "o", "ô": "o", "ö": "o",
    "ù": "u", "ú": "u", "û": "u", "ü": "u",
    "À": "A", "É": "E", "È": "E", "Ç": "C",
}

class CorpusError(Exception):
    """A corpus or a cached n-gram table could not be loaded."""

class NgramLengthError(ValueError):
    """Attempted to merge n-gram tables with different window lengths."""

class NgramTable:

    def __init__(self, n: int, counts: Counter = None) -> None:
        self.n = n
        self.counts = counts if counts is not None else Counter()

    def total(self) -> int:
        return self.counts.total()

    def most_common_table(self, precision: int) -> "NgramTable":
        """The top `precision` n-grams, or everything if precision <= 0."""
        if precision <= 0 or precision >= len(self.counts):
            return self
        return NgramTable(self.n, Counter(dict(
            self.counts.most_common(precision))))

    def completeness(self, other: "NgramTable") -> float:
        """Share of other's n-gram occurrences covered by this table."""
        total = other.total()
        return self.total() / total if total else 1.0

    def jsonable_export(self):
        return {
            "n": self.n,
            "counts": dict(self.counts),
        }

    @classmethod
    def from_json(cls, json_dict: dict) -> "NgramTable":
        return cls(int(json_dict["n"]), Counter(
            {ngram: int(count) for ngram, count in json_dict["counts"].items()}
        ))

    def __len__(self) -> int:
        return len(self.counts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NgramTable):
            return NotImplemented
        return self.n == other.n and self.counts == other.counts

def normalize(text: str, swap_chars: dict[str, str]) -> str:
    text = text.replace("\r\n", "\n")
    if swap_chars:
        text = text.translate(str.maketrans(swap_chars))
    return text

def build_ngrams(text: str, swap_chars: dict[str, str] = None,
                 n: int = 4) -> NgramTable:
    """Counts every window of n characters whose characters are all ASCII.
    The final window of the text is not counted."""
    if swap_chars is None:
        swap_chars = DEFAULT_SWAP_CHARS
    text = normalize(text, swap_chars)
    counts = Counter()
    for i in range(len(text) - n):
        window = text[i:i+n]
        if all(ord(char) <= 128 for char in window):
            counts[window] += 1
    return NgramTable(n, counts)

def parse_ngram_counts(text: str, sep: str = "\t",
                       n: int = None) -> NgramTable:
    """Reads precounted n-grams, one `ngram<sep>count` per line. Repeated
    n-grams are summed and ones with non-ASCII characters are dropped.
    If n isn't given it is the length of the first n-gram."""
    counts = Counter()
    for line_no, line in enumerate(text.replace("\r\n", "\n").split("\n"), 1):
        if not line:
            continue
        ngram, found, count = line.rpartition(sep)
        if not found or not ngram:
            raise CorpusError(
                f"Line {line_no}: expected ngram{sep!r}count, got {line!r}")
        try:
            count = int(count)
        except ValueError as e:
            raise CorpusError(f"Line {line_no}: bad count {count!r}") from e
        if n is None:
            n = len(ngram)
        if all(ord(char) <= 128 for char in ngram):
            counts[ngram] += count
    return NgramTable(n or 0, counts)

def build_word_counts(text: str, sep: str = " ",
                      swap_chars: dict[str, str] = None) -> NgramTable:
    """Counts the words between separators on each line. The result has
    n = 0 until it is split up with rewindow."""
    if swap_chars is None:
        swap_chars = DEFAULT_SWAP_CHARS
    counts = Counter()
    for line in normalize(text, swap_chars).split("\n"):
        for word in line.split(sep):
            if word and all(ord(char) <= 128 for char in word):
                counts[word] += 1
    return NgramTable(0, counts)

def rewindow(table: NgramTable, n: int) -> NgramTable:
    """Splits every key into its windows of n characters, each weighted by
    the key's count. Every window is counted, including the last. Keys
    shorter than n are dropped."""
    counts = Counter()
    too_short = 0
    for key, count in table.counts.items():
        if len(key) < n:
            too_short += 1
            continue
        for i in range(len(key) - n + 1):
            counts[key[i:i+n]] += count
    if too_short:
        logger.info(f"Dropped {too_short} entries shorter than {n}")
    return NgramTable(n, counts)

def merge_ngram_tables(tables: Iterable[NgramTable]) -> NgramTable:
    """Sums counts of identical n-grams."""
    tables = list(tables)
    if not tables:
        return NgramTable(0)
    n = tables[0].n
    merged = Counter()
    for table in tables:
        if table.n != n:
            raise NgramLengthError(
                f"Cannot merge {table.n}-grams into {n}-grams")
        merged.update(table.counts)
    return NgramTable(n, merged)

def read_corpus(filename: str) -> str:
    try:
        with open(filename, encoding="utf-8", errors="ignore") as file:
            return file.read()
    except OSError as e:
        raise CorpusError(f"Could not read corpus {filename}: {e}") from e

def load_corpus(filename: str, swap_chars: dict[str, str] = None,
                n: int = 4) -> NgramTable:
    table = build_ngrams(read_corpus(filename), swap_chars, n)
    logger.info(f"Read {filename}: {len(table)} distinct {n}-grams, "
        f"{table.total()} total")
    return table

def table_path(name: str, folder: str = "processed") -> str:
    return os.path.join(folder, f"{os.path.basename(name)}.json")

def save_ngram_table(table: NgramTable, name: str,
                     folder: str = "processed") -> str:
    os.makedirs(folder, exist_ok=True)
    path_ = table_path(name, folder)
    with open(path_, "w", encoding="utf-8") as file:
        json.dump(table.jsonable_export(), file)
    return path_

def load_ngram_table(name: str, folder: str = "processed") -> NgramTable:
    path_ = table_path(name, folder)
    try:
        with open(path_, encoding="utf-8") as file:
            json_dict = json.load(file)
    except OSError as e:
        raise CorpusError(f"Could not read n-gram table {path_}: {e}") from e
    except json.decoder.JSONDecodeError as e:
        raise CorpusError(f"{path_} is not valid json: {e}") from e
    try:
        return NgramTable.from_json(json_dict)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CorpusError(f"{path_} is not an n-gram table: {e}") from e
