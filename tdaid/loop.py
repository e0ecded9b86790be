"""The convergence loop: test, patch, commit, repeat; squash once tests pass.

States move Idle -> Running -> Committing -> Done -> Idle. Each iteration of
Running runs the tests; on failure it asks the provider for a replacement
implementation, writes it and commits. Committing collapses the attempt commits
into one with a summary message from the provider.
"""

import sys
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from tdaid import prompts, vcs
from tdaid.config import Config
from tdaid.errors import MalformedResponseError, SummarizationError, TestRunnerFailure, TransportError
from tdaid.extract import (
    CommitSummary,
    Patch,
    iter_sections,
    parse_json,
    parse_sections,
    strip_code_fence,
)
from tdaid.providers import CompletionProvider
from tdaid.runner import DEFAULT_TEST_COMMAND, run_tests


class State(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMMITTING = "committing"
    DONE = "done"


@dataclass
class Session:
    """Everything one attempt sequence needs, passed explicitly into the loop.

    `in_flight` is read by the watcher thread to drop changes that arrive while
    a sequence is running.
    """

    root: Path
    provider: CompletionProvider
    test_command: str = DEFAULT_TEST_COMMAND
    mode: str = "json"
    max_attempts: int | None = None
    state: State = State.IDLE
    in_flight: bool = False

    @classmethod
    def from_config(cls, root: Path, provider: CompletionProvider, config: Config) -> "Session":
        return cls(
            root=root,
            provider=provider,
            test_command=config.test_command,
            mode=config.mode,
            max_attempts=config.max_attempts,
        )

    @property
    def implementation_path(self) -> Path:
        return self.root / prompts.IMPLEMENTATION_FILE

    @property
    def test_path(self) -> Path:
        return self.root / prompts.TEST_FILE


@dataclass(frozen=True)
class SequenceResult:
    converged: bool
    # Failing test runs, which is also the number of attempt commits.
    attempts: int
    squashed: bool


def _write_implementation(session: Session, code: str) -> None:
    session.implementation_path.write_text(strip_code_fence(code), encoding="utf-8")


def _apply_patch(session: Session, patch: Patch) -> None:
    print(patch.plan, file=sys.stderr)
    _write_implementation(session, patch.code)
    vcs.commit_all(session.root, patch.commit_message)


def _restore_implementation(session: Session, previous: str | None) -> None:
    if previous is None:
        session.implementation_path.unlink(missing_ok=True)
    else:
        session.implementation_path.write_text(previous, encoding="utf-8")


def _apply_stream(session: Session, chunks: Iterable[str]) -> None:
    """Apply each section of a streamed patch as soon as it completes.

    The commit waits until both the code and the commit message have arrived,
    so it always includes the new implementation. If the stream fails before
    that commit, the implementation file is put back as it was.
    """
    received: list[str] = []

    def tee(source: Iterable[str]) -> Iterator[str]:
        for chunk in source:
            received.append(chunk)
            yield chunk

    previous = None
    if session.implementation_path.exists():
        previous = session.implementation_path.read_text(encoding="utf-8")

    code_written = False
    commit_message: str | None = None
    committed = False

    try:
        for name, value in iter_sections(tee(chunks)):
            if name == "plan":
                print(value, file=sys.stderr)
            elif name == "code":
                _write_implementation(session, value)
                code_written = True
            elif name == "commit_message":
                commit_message = value

            if code_written and commit_message is not None and not committed:
                vcs.commit_all(session.root, commit_message)
                committed = True

        if not committed:
            missing = []
            if not code_written:
                missing.append("code")
            if commit_message is None:
                missing.append("commit_message")
            raw = "".join(received)
            print(raw, file=sys.stderr)
            raise MalformedResponseError(f"streamed response is missing sections: {', '.join(missing)}", raw)
    except Exception:
        if code_written and not committed:
            _restore_implementation(session, previous)
        raise


def _request_patch(session: Session, boundary: str, test_text: str, main_text: str, errors: str) -> None:
    git_log = vcs.log_since(session.root, boundary)
    system = prompts.patch_system_prompt(session.mode)
    messages = prompts.patch_messages(git_log, test_text, main_text, errors, session.mode)

    if session.mode == "stream":
        _apply_stream(session, session.provider.stream(system, messages))
        return

    if session.mode == "json":
        patch = parse_json(session.provider.generate(system, messages, schema=Patch), Patch)
    else:
        patch = parse_sections(session.provider.generate(system, messages))
    _apply_patch(session, patch)


def step(session: Session, boundary: str) -> bool:
    """Run one Running iteration. Returns True once the tests pass."""
    main_text = ""
    if session.implementation_path.exists():
        main_text = session.implementation_path.read_text(encoding="utf-8")
    test_text = session.test_path.read_text(encoding="utf-8")

    try:
        run_tests(session.root, session.test_command)
    except TestRunnerFailure as failure:
        print(f"Tests failed (exit code {failure.outcome.exit_code}); requesting a patch...", file=sys.stderr)
        _request_patch(session, boundary, test_text, main_text, failure.outcome.output)
        return False
    return True


def squash_history(session: Session, boundary: str) -> bool:
    """Collapse the commits since boundary into one. Returns False if there were none.

    Raises SummarizationError, before touching history, when no commit message
    can be obtained.
    """
    git_log = vcs.log_since(session.root, boundary)
    if not git_log.strip():
        return False

    try:
        raw = session.provider.generate(
            prompts.SUMMARY_SYSTEM_PROMPT,
            prompts.summary_messages(git_log),
            schema=CommitSummary,
        )
        summary = parse_json(raw, CommitSummary)
    except (TransportError, MalformedResponseError) as e:
        raise SummarizationError(f"could not get a summary commit message: {e}") from e

    message = summary.commit_message.strip()
    if not message:
        raise SummarizationError("provider returned an empty summary commit message")

    vcs.squash(session.root, boundary, message)
    return True


def run_sequence(session: Session) -> SequenceResult:
    """Run one attempt sequence from Idle back to Idle."""
    session.in_flight = True
    try:
        boundary = vcs.current_revision(session.root)
        session.state = State.RUNNING
        print("Testing your code...", file=sys.stderr)

        attempts = 0
        while not step(session, boundary):
            attempts += 1
            if session.max_attempts is not None and attempts >= session.max_attempts:
                print(
                    f"Attempt limit reached ({attempts}) and tests are still failing. "
                    "Commits were left unsquashed; human intervention requested.",
                    file=sys.stderr,
                )
                session.state = State.DONE
                return SequenceResult(converged=False, attempts=attempts, squashed=False)

        print("All tests passed!", file=sys.stderr)
        session.state = State.COMMITTING

        count = vcs.count_commits_since(session.root, boundary)
        squashed = False
        if count:
            print(f"Squashing {count} commits...", file=sys.stderr)
            try:
                squashed = squash_history(session, boundary)
            except SummarizationError as e:
                print(f"Warning: {e}. Leaving {count} commits unsquashed.", file=sys.stderr)

        session.state = State.DONE
        print("Done!\n\n", file=sys.stderr)
        return SequenceResult(converged=True, attempts=attempts, squashed=squashed)
    finally:
        session.state = State.IDLE
        session.in_flight = False
