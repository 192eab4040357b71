import json
import logging

import pytest

import command
import corpus
import keygen
from session import Session

sample_text = "the quick brown fox jumps over the lazy dog.\n" * 4

@pytest.fixture
def s(tmp_path):
    s = Session(str(tmp_path / "settings.json"))
    s.set("processed_dir", str(tmp_path / "processed"))
    s.set("results_dir", str(tmp_path / "results"))
    s.set("cycles", 10)
    s.set("rounds", 1)
    s.set("top", 2)
    s.set("processes", 1)
    return s

@pytest.fixture
def corpus_file(tmp_path):
    path_ = tmp_path / "fox.txt"
    path_.write_text(sample_text, encoding="utf-8")
    return str(path_)

def test_parse_options(s):
    positional, opts = command.parse_options(
        ["fox.txt", "-t", "3", "--swaps", "5", "-p", "base.txt"], s)
    assert positional == ["fox.txt", "base.txt"]
    assert opts == command.Options(3, 5, True, False)

def test_bad_numeric_option_falls_back(s, caplog):
    with caplog.at_level(logging.WARNING):
        _, opts = command.parse_options(["fox.txt", "-t", "x", "-s", "0"], s)
    assert opts.top == s["top"]
    assert opts.swaps == s["swaps"]
    assert "Invalid value 'x' for top" in caplog.text

def test_missing_option_value(s):
    _, opts = command.parse_options(["fox.txt", "-s"], s)
    assert opts.swaps == s["swaps"]

def test_unknown_command(s, capsys):
    assert command.run_command("frobnicate", [], s) == 2
    assert "Usage" in capsys.readouterr().out

def test_help(s, capsys):
    assert command.run_command("help", [], s) == 0
    out = capsys.readouterr().out
    assert "run <corpus>" in out
    assert "--swaps" in out
    assert command.run_command("run", ["-h"], s) == 0
    assert "Aliases: run" in capsys.readouterr().out

def test_run_ref(s, corpus_file, capsys):
    assert command.run_command("run-ref", [corpus_file], s) == 0
    out = capsys.readouterr().out
    assert "total:" in out
    assert "Roll in" in out
    assert "Hands:" in out

def test_run(s, corpus_file, capsys):
    assert command.run_command("run", [corpus_file, "-t", "2"], s) == 0
    out = capsys.readouterr().out
    assert "Initial layout:" in out
    assert "#1" in out and "#2" in out

def test_run_saves_snapshot(s, corpus_file, tmp_path):
    s.set("save_snapshots", True)
    assert command.run_command("run", [corpus_file], s) == 0
    snapshots = list((tmp_path / "results").glob("runstate_*.json"))
    assert len(snapshots) == 1
    data = json.loads(snapshots[0].read_text(encoding="utf-8"))
    assert len(data["layouts"]) == 2

def test_run_without_corpus(s):
    assert command.run_command("run", [], s) == 2

def test_run_missing_corpus(s, tmp_path):
    with pytest.raises(corpus.CorpusError):
        command.run_command("run", [str(tmp_path / "missing.txt")], s)

def test_prepare_and_merge(s, corpus_file, tmp_path):
    other = tmp_path / "dog.txt"
    other.write_text("lazy dogs sleep all day long.", encoding="utf-8")
    assert command.run_command("prepare", [corpus_file], s) == 0
    assert command.run_command("prepare", [str(other)], s) == 0
    assert command.run_command("merge", ["fox,dog"], s) == 0

    folder = s["processed_dir"]
    fox = corpus.load_ngram_table("fox", folder)
    dog = corpus.load_ngram_table("dog", folder)
    merged = corpus.load_ngram_table("fox_dog", folder)
    assert merged.total() == fox.total() + dog.total()

def test_run_from_processed(s, corpus_file, capsys):
    assert command.run_command("prepare", [corpus_file, "fox"], s) == 0
    assert command.run_command("run-ref", ["fox", "-p"], s) == 0
    assert "total:" in capsys.readouterr().out

def test_merge_needs_two(s):
    assert command.run_command("merge", ["fox"], s) == 2

def test_set(s):
    assert command.run_command("set", ["cycles", "77"], s) == 0
    assert s["cycles"] == 77
    assert Session(s.settings_file)["cycles"] == 77
    assert command.run_command("set", ["cycles", "lots"], s) == 1
    assert command.run_command(
        "set", ["hidden_categories", '["Alternation"]'], s) == 0
    assert s["hidden_categories"] == ["Alternation"]

@pytest.fixture
def logging_calls(monkeypatch):
    """Records logging setup instead of replacing the root handlers."""
    calls = []
    monkeypatch.setattr(logging, "basicConfig",
        lambda **kwargs: calls.append(kwargs))
    return calls

def test_configure_logging(logging_calls):
    keygen.configure_logging(logging.DEBUG)
    assert logging_calls == [
        {"level": logging.DEBUG, "format": keygen.log_format, "force": True}]

def test_main_reports_bad_corpus(tmp_path, monkeypatch, logging_calls):
    monkeypatch.setenv("KEYGEN_SETTINGS", str(tmp_path / "settings.json"))
    assert keygen.main(["run", str(tmp_path / "missing.txt")]) == 1
    assert logging_calls[0]["level"] == "INFO"

def test_main_debug_flag(tmp_path, monkeypatch, logging_calls):
    monkeypatch.setenv("KEYGEN_SETTINGS", str(tmp_path / "settings.json"))
    assert keygen.main(["set", "-d"]) == 0
    assert logging_calls[0]["level"] == logging.DEBUG

def test_main_without_args(tmp_path, monkeypatch, capsys, logging_calls):
    monkeypatch.setenv("KEYGEN_SETTINGS", str(tmp_path / "settings.json"))
    assert keygen.main([]) == 2
    assert keygen.main(["-h"]) == 0
    assert "Usage" in capsys.readouterr().out

def test_prepare_counts(s, tmp_path):
    path_ = tmp_path / "counts.tsv"
    path_.write_text("the quick\t2\nab\t7\n", encoding="utf-8")
    s.set("ngram_length", 8)
    assert command.run_command("prepare", [str(path_), "--counts"], s) == 0
    table = corpus.load_ngram_table("counts", s["processed_dir"])
    assert table.n == 8
    assert table.counts == {"the quic": 2, "he quick": 2}

def test_prepare_words(s, tmp_path):
    path_ = tmp_path / "words.txt"
    path_.write_text("rolls rolls\nroll\n", encoding="utf-8")
    s.set("ngram_length", 4)
    assert command.run_command(
        "prepare", [str(path_), "words", "--words"], s) == 0
    table = corpus.load_ngram_table("words", s["processed_dir"])
    assert table.counts == {"roll": 3, "olls": 2}

def test_prepare_bad_counts(s, tmp_path):
    path_ = tmp_path / "counts.tsv"
    path_.write_text("no tabs here\n", encoding="utf-8")
    with pytest.raises(corpus.CorpusError):
        command.run_command("prepare", [str(path_), "--counts"], s)
