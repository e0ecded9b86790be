"""Runs the project's test command and captures what it printed."""

import subprocess
from dataclasses import dataclass
from pathlib import Path

from tdaid.errors import TestRunnerFailure

DEFAULT_TEST_COMMAND = "go mod tidy && go test"


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one test run. Lives only for the iteration that produced it."""

    exit_code: int
    output: str

    @property
    def passed(self) -> bool:
        return self.exit_code == 0


def _decode(b: bytes) -> str:
    return b.decode("utf-8", errors="replace")


def run_tests(root: Path, command: str = DEFAULT_TEST_COMMAND) -> AttemptOutcome:
    """Run the test command through the shell in root.

    stdout and stderr are interleaved into a single diagnostic string. Raises
    TestRunnerFailure (carrying the outcome) on a non-zero exit; a command that
    cannot build or cannot be found fails the same way as a failing assertion.
    """
    proc = subprocess.run(
        command,
        shell=True,
        cwd=str(root),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        check=False,
    )
    outcome = AttemptOutcome(
        exit_code=proc.returncode,
        output=_decode(proc.stdout),
    )
    if not outcome.passed:
        raise TestRunnerFailure(outcome)
    return outcome
