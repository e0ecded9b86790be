"""Exceptions raised by the test-driven patch loop."""


class TdaidError(Exception):
    """Base class for all errors raised by tdaid."""


class ConfigError(TdaidError):
    """A value in `.config/tdaid.json` cannot be used."""


class VersionControlError(TdaidError):
    """A git command exited non-zero."""

    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        self.git_args = args
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"git {' '.join(args)} failed with exit code {returncode}: {stderr.strip()}")


class TestRunnerFailure(TdaidError):
    """The test command reported failure. Expected; drives the next patch request."""

    __test__ = False

    def __init__(self, outcome) -> None:
        self.outcome = outcome
        super().__init__(f"tests failed with exit code {outcome.exit_code}")


class MalformedResponseError(TdaidError):
    """A model response could not be parsed or validated.

    `raw` holds the offending text for diagnostics.
    """

    def __init__(self, message: str, raw: str = "") -> None:
        self.raw = raw
        super().__init__(message)


class TransportError(TdaidError):
    """The completion provider could not be reached or returned nothing usable."""


class SummarizationError(TdaidError):
    """No squash commit message could be obtained; history is left unsquashed."""
