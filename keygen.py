import logging
import sys

import command
import corpus
from session import Session

logger = logging.getLogger("keygen")

log_format = "%(asctime)s %(levelname)s %(name)s: %(message)s"

def configure_logging(level: int | str):
    logging.basicConfig(level=level, format=log_format, force=True)

def main(argv: list[str] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    s = Session()
    debug = "-d" in args or "--debug" in args
    configure_logging(logging.DEBUG if debug else s["log_level"])
    s.report_startup()

    if not args or args[0] in ("-h", "--help"):
        command.run_command("help", [], s)
        return 0 if args else 2

    name = args.pop(0).lower()
    try:
        return command.run_command(name, args, s)
    except corpus.CorpusError as e:
        logger.error(e)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130

if __name__ == "__main__":
    sys.exit(main())
