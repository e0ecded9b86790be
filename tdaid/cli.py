"""Command-line entry point: `tdaid [folder]`."""

import sys
from pathlib import Path

from tdaid import vcs
from tdaid.config import load_config
from tdaid.loop import Session, run_sequence
from tdaid.prompts import TEST_FILE
from tdaid.providers import make_provider
from tdaid.watch import Watcher

DEFAULT_FOLDER = "./example"


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    root = Path(args[0] if args else DEFAULT_FOLDER).resolve()

    print("Welcome to Test Driven AI Development!\n", file=sys.stderr)

    config = load_config(root)

    # Force the folder to be a repository; a no-op if it already is one.
    vcs.ensure_repository(root)

    session = Session.from_config(root, make_provider(config.provider, config.model), config)

    try:
        run_sequence(session)
        for _ in Watcher(root, TEST_FILE, session):
            print("Tests have changed.  Restarting.", file=sys.stderr)
            run_sequence(session)
    except KeyboardInterrupt:
        return 130
    return 0
