"""Turns free-form model output into the fields the loop needs.

Two encodings are supported:

- a JSON object validated against a pydantic model, and
- marker-delimited sections such as `<plan>...</plan>`, either from a complete
  response or incrementally from a stream of chunks.

In both cases a field is either fully present or absent; no partial values are
ever returned.
"""

import json
import re
import sys
from collections.abc import Iterable, Iterator
from typing import TypeVar

from pydantic import BaseModel, Field, ValidationError

from tdaid.errors import MalformedResponseError

FIELDS = ("plan", "code", "commit_message")

_FENCE_RE = re.compile(r"```go\n([\s\S]*)\n```")
_CLOSE_RE = re.compile(r"</(\w+)>")

M = TypeVar("M", bound=BaseModel)


class Patch(BaseModel):
    plan: str = Field(description="A short description of how you are planning to change the code.")
    code: str = Field(description="The Go code that should replace `main.go`.")
    commit_message: str = Field(description="A short commit message that describes the changes you made.")


class CommitSummary(BaseModel):
    commit_message: str = Field(
        description=(
            "A commit message that describes the changes you made.  "
            "Short first line and then 1-2 tight paragraphs of details as needed."
        )
    )


def parse_json(raw: str, model: type[M]) -> M:
    """Parse raw as a JSON object and validate it against model."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        print(raw, file=sys.stderr)
        raise MalformedResponseError(f"response is not valid JSON: {e}", raw) from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        print(raw, file=sys.stderr)
        raise MalformedResponseError(f"response does not match {model.__name__}: {e}", raw) from e


def _open_marker(name: str) -> str:
    return f"<{name}>"


def _close_marker(name: str) -> str:
    return f"</{name}>"


def wrap_section(name: str, value: str) -> str:
    return f"{_open_marker(name)}{value}{_close_marker(name)}"


def _find_section(text: str, name: str) -> tuple[str, int] | None:
    """Return (value, end of close marker) for the first complete section called name."""
    start = text.find(_open_marker(name))
    if start == -1:
        return None
    start += len(_open_marker(name))
    end = text.find(_close_marker(name), start)
    if end == -1:
        return None
    return text[start:end].lstrip(), end + len(_close_marker(name))


def extract_section(text: str, name: str) -> str | None:
    """Return the text between the first open and close markers for name.

    Leading whitespace is stripped. Returns None unless both markers are present.
    """
    found = _find_section(text, name)
    if found is None:
        return None
    return found[0]


def parse_sections(raw: str) -> Patch:
    """Extract every patch field from a complete delimited response."""
    values: dict[str, str] = {}
    missing: list[str] = []
    for name in FIELDS:
        value = extract_section(raw, name)
        if value is None:
            missing.append(name)
        else:
            values[name] = value

    if missing:
        print(raw, file=sys.stderr)
        raise MalformedResponseError(f"response is missing sections: {', '.join(missing)}", raw)
    return Patch(**values)


def iter_sections(chunks: Iterable[str], names: Iterable[str] = FIELDS) -> Iterator[tuple[str, str]]:
    """Yield (name, value) pairs as each section of a streamed response completes.

    After every chunk each pending name is looked up in the whole buffer with the
    same rule as `extract_section`, so the result does not depend on how the text
    was split. Sections completed by the same chunk come out in close-marker order.
    Unknown and repeated sections are reported on stderr and skipped.
    """
    wanted = tuple(names)
    closed_at: dict[str, int] = {}
    reported: set[str] = set()
    buffer = ""

    for chunk in chunks:
        buffer += chunk

        ready = []
        for name in wanted:
            if name in closed_at:
                continue
            found = _find_section(buffer, name)
            if found is not None:
                value, end = found
                ready.append((end, name, value))
        for end, name, value in sorted(ready):
            closed_at[name] = end
            yield name, value

        for m in _CLOSE_RE.finditer(buffer):
            name = m.group(1)
            if name not in wanted and name not in reported:
                reported.add(name)
                print(f"  ignoring unknown section: {name}", file=sys.stderr)
        for name, end in closed_at.items():
            if name not in reported and buffer.find(_open_marker(name), end) != -1:
                reported.add(name)
                print(f"  ignoring repeated section: {name}", file=sys.stderr)


def strip_code_fence(text: str) -> str:
    """Remove a ```go fenced-code wrapper, if there is one."""
    m = _FENCE_RE.search(text)
    if m is None:
        return text
    return m.group(1)
