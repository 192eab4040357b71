import json
import logging
import os

import corpus

logger = logging.getLogger(__name__)

SETTINGS_FILE = "keygen_settings.json"

default_settings = {
    "ngram_length": 4,
    "precision": 0,
    "cycles": 2000,
    "rounds": 5,
    "top": 4,
    "swaps": 2,
    "t0": 0.02,
    "tf": 1e-5,
    "processes": 0,
    "log_every": 1000,
    "log_level": "INFO",
    "save_snapshots": False,
    "processed_dir": "processed",
    "results_dir": "results",
    "swap_chars": corpus.DEFAULT_SWAP_CHARS,
    "hidden_categories": [],
}

def _valid(field: str, value) -> bool:
    default = default_settings[field]
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        if field in ("precision", "processes"):
            return value >= 0
        return value >= 1
    if isinstance(default, float):
        return (isinstance(value, (int, float))
            and not isinstance(value, bool) and value > 0)
    if isinstance(default, str):
        if field == "log_level":
            return value in ("DEBUG", "INFO", "WARNING", "ERROR")
        return isinstance(value, str) and bool(value)
    if field == "swap_chars":
        return isinstance(value, dict) and all(
            isinstance(k, str) and isinstance(v, str) and len(k) == 1
            for k, v in value.items())
    if field == "hidden_categories":
        return isinstance(value, list) and all(
            isinstance(v, str) for v in value)
    return False

class Session:
    """
    Contains keygen settings, and the channels that commands report
    through: `say` for status messages, `output` for results.
    """

    def __init__(self, settings_file: str = None) -> None:
        if settings_file is None:
            settings_file = os.environ.get("KEYGEN_SETTINGS", SETTINGS_FILE)
        self.settings_file = settings_file
        self.settings = dict(default_settings)
        self.startup_messages = [] # type: list[tuple[int, str]]

        try:
            with open(self.settings_file, encoding="utf-8") as file:
                loaded = json.load(file)
            if not isinstance(loaded, dict):
                raise TypeError("settings must be a json object")
        except FileNotFoundError:
            self.startup_messages.append(
                (logging.DEBUG, "Using default settings"))
            return
        except (OSError, TypeError, json.decoder.JSONDecodeError) as e:
            self.startup_messages.append(
                (logging.WARNING, f"Using default settings ({e})"))
            return

        bad = []
        for field in default_settings:
            if field not in loaded:
                continue
            if _valid(field, loaded[field]):
                self.settings[field] = loaded[field]
            else:
                bad.append(field)
        if self.settings["t0"] <= self.settings["tf"]:
            bad.extend(("t0", "tf"))
            self.settings["t0"] = default_settings["t0"]
            self.settings["tf"] = default_settings["tf"]
        self.startup_messages.append(
            (logging.DEBUG, f"Loaded settings from {self.settings_file}"))
        if bad:
            self.startup_messages.append((logging.WARNING,
                "Set some missing/bad settings to default: "
                + ", ".join(bad)))

    def __getitem__(self, field: str):
        return self.settings[field]

    def set(self, field: str, value) -> bool:
        """Sets a field if the value is valid for it."""
        if field not in default_settings or not _valid(field, value):
            return False
        self.settings[field] = value
        return True

    def save_settings(self):
        with open(self.settings_file, "w", encoding="utf-8") as file:
            json.dump(self.settings, file, indent=2)

    def report_startup(self):
        for level, msg in self.startup_messages:
            logger.log(level, msg)
        self.startup_messages.clear()

    def say(self, msg: str, level: int = logging.INFO):
        logger.log(level, msg)

    def output(self, msg: str):
        print(msg, flush=True)
