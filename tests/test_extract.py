import json

import pytest

from tdaid.errors import MalformedResponseError
from tdaid.extract import (
    FIELDS,
    CommitSummary,
    Patch,
    extract_section,
    iter_sections,
    parse_json,
    parse_sections,
    strip_code_fence,
    wrap_section,
)


def test_parse_json_valid_patch():
    raw = json.dumps({"plan": "add Foo", "code": "package main", "commit_message": "Add Foo"})
    patch = parse_json(raw, Patch)
    assert patch == Patch(plan="add Foo", code="package main", commit_message="Add Foo")


def test_parse_json_invalid_json_dumps_raw(capsys):
    with pytest.raises(MalformedResponseError) as exc_info:
        parse_json("{not json", Patch)
    assert exc_info.value.raw == "{not json"
    assert "{not json" in capsys.readouterr().err


def test_parse_json_schema_mismatch():
    raw = json.dumps({"plan": "x", "code": "y"})
    with pytest.raises(MalformedResponseError) as exc_info:
        parse_json(raw, Patch)
    assert exc_info.value.raw == raw


def test_parse_json_wrong_field_type():
    with pytest.raises(MalformedResponseError):
        parse_json(json.dumps({"commit_message": 12}), CommitSummary)


def test_extract_section_strips_leading_whitespace_only():
    text = "<plan>\n  do the thing  \n</plan>"
    assert extract_section(text, "plan") == "do the thing  \n"


def test_extract_section_uses_first_markers():
    text = "<code>one</code> <code>two</code>"
    assert extract_section(text, "code") == "one"


def test_extract_section_missing_close_marker():
    assert extract_section("<code>package main", "code") is None
    assert extract_section("nothing here", "code") is None


def test_section_round_trip():
    values = {
        "plan": "Introduce Foo and tidy imports.",
        "code": 'package main\n\nfunc Foo() string {\n\treturn "<b>"\n}\n',
        "commit_message": "Add Foo",
    }
    text = "\n".join(wrap_section(name, "\n\n" + values[name]) for name in FIELDS)
    for name in FIELDS:
        assert extract_section(text, name) == values[name]
    assert parse_sections(text) == Patch(**values)


def test_parse_sections_missing_field():
    text = "<plan>p</plan><code>package main"
    with pytest.raises(MalformedResponseError, match="code, commit_message"):
        parse_sections(text)


def test_iter_sections_across_chunk_boundaries():
    text = "<plan>Plan it</plan>\n<code>package main\n</code>\n<commit_message>Msg</commit_message>"
    chunks = [text[i : i + 3] for i in range(0, len(text), 3)]
    assert list(iter_sections(chunks)) == [
        ("plan", "Plan it"),
        ("code", "package main\n"),
        ("commit_message", "Msg"),
    ]


def test_iter_sections_yields_as_soon_as_section_closes():
    produced = []

    def chunks():
        produced.append(1)
        yield "<plan>first</plan><co"
        produced.append(2)
        yield "de>x</code>"

    it = iter_sections(chunks())
    assert next(it) == ("plan", "first")
    assert produced == [1]
    assert next(it) == ("code", "x")
    assert produced == [1, 2]


def test_iter_sections_orders_by_close_marker():
    text = "<commit_message>Msg</commit_message><plan>Plan</plan>"
    assert [name for name, _ in iter_sections([text])] == ["commit_message", "plan"]


def test_iter_sections_ignores_unknown_and_repeated(capsys):
    text = "<notes>n</notes><plan>one</plan><plan>two</plan><code>c</code>"
    assert list(iter_sections([text])) == [("plan", "one"), ("code", "c")]
    err = capsys.readouterr().err
    assert "unknown section: notes" in err
    assert "repeated section: plan" in err


def test_iter_sections_never_yields_unclosed_section():
    assert list(iter_sections(["<plan>p</plan>", "<code>package main\nfunc"])) == [("plan", "p")]


def test_iter_sections_stray_open_marker_does_not_block():
    text = "Sure, here is a Map<T> version.\n<plan>p</plan>"
    assert list(iter_sections([text])) == [("plan", "p")]


WRAPPED = "<response><plan>p</plan><code>c</code><commit_message>m</commit_message></response>"


def test_iter_sections_inside_unknown_wrapper(capsys):
    assert list(iter_sections([WRAPPED])) == [("plan", "p"), ("code", "c"), ("commit_message", "m")]
    assert "unknown section: response" in capsys.readouterr().err


@pytest.mark.parametrize("size", [1, 2, 5, 11, len(WRAPPED)])
def test_iter_sections_independent_of_chunking(size):
    chunks = [WRAPPED[i : i + size] for i in range(0, len(WRAPPED), size)]
    assert list(iter_sections(chunks)) == list(iter_sections([WRAPPED]))


def test_iter_sections_unclosed_section_does_not_block_later_ones():
    text = "<plan>forgot to close\n<code>c</code><commit_message>m</commit_message>"
    assert list(iter_sections([text])) == [("code", "c"), ("commit_message", "m")]
    assert list(iter_sections(list(text))) == [("code", "c"), ("commit_message", "m")]


def test_iter_sections_agrees_with_extract_section():
    text = "<notes><plan>a</plan></notes><code>b</code><plan>again</plan><commit_message>c</commit_message>"
    assert dict(iter_sections(list(text))) == {name: extract_section(text, name) for name in FIELDS}


def test_strip_code_fence():
    assert strip_code_fence("```go\npackage main\n```") == "package main"
    assert strip_code_fence("Here:\n```go\npackage main\n\nfunc A() {}\n```\ntrailing") == (
        "package main\n\nfunc A() {}"
    )


def test_strip_code_fence_leaves_unfenced_text():
    assert strip_code_fence("package main\n") == "package main\n"
    assert strip_code_fence("```\npackage main\n```") == "```\npackage main\n```"
