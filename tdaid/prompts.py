"""Prompt text sent to the completion provider."""

from tdaid.extract import FIELDS, wrap_section

IMPLEMENTATION_FILE = "main.go"
TEST_FILE = "main_test.go"

PATCH_SYSTEM_PROMPT = (
    "You are an assistant that implements Go code for a user to comply with the tests that they provide.\n"
    f"You will be given their `{TEST_FILE}` file, the most recent `{IMPLEMENTATION_FILE}` that you provided, "
    "as well as any errors or failures that result from `go test`, and you will need to write the new code "
    f"that should be placed in their `{IMPLEMENTATION_FILE}` file.\n"
    "You should include light comments in your output.\n"
    "You will be invoked repeatedly until the code you provide passes all tests.\n"
    "If the user changes their tests, the process will start again.\n"
    "You *must* make changes to the code each time.\n"
    'You should do light refactoring to "clean up" and "simplify" the code as well as fixing any errors '
    "that are present.\n"
)

_SECTION_DESCRIPTIONS = {
    "plan": "a short description of how you are planning to change the code",
    "code": f"the Go code that should replace `{IMPLEMENTATION_FILE}`",
    "commit_message": "a short commit message that describes the changes you made",
}

SECTIONS_FORMAT = (
    "Respond with exactly these sections, in this order, and nothing else:\n"
    + "\n".join(wrap_section(name, f"<{_SECTION_DESCRIPTIONS[name]}>") for name in FIELDS)
    + "\nDo not nest sections and do not repeat any section.\n"
)

JSON_FORMAT = (
    "You must always generate a result as a valid JSON object with a format:\n"
    "{\n"
    + ",\n".join(f"  '{name}': '<{_SECTION_DESCRIPTIONS[name]}>'" for name in FIELDS)
    + "\n}\n"
    "Make sure to escape all characters within string literals inside JSON!\n"
)

SUMMARY_SYSTEM_PROMPT = (
    "You have successfully passed all tests.  Please provide a commit message for your changes.  "
    "You don't need to reference that this is just to pass the tests, describe the changes *including* "
    "the tests as though you wrote both."
)

SUMMARY_FORMAT = (
    "You must always generate a result as a valid JSON object with a format:\n"
    "{\n"
    "  'commit_message': '<a commit message that describes the changes you made.  "
    "Short first line and then 1-2 tight paragraphs of details as needed.>'\n"
    "}\n"
    "Make sure to escape newlines correctly within JSON strings!\n"
)


def patch_system_prompt(mode: str) -> str:
    if mode == "json":
        return PATCH_SYSTEM_PROMPT
    return PATCH_SYSTEM_PROMPT + "\n" + SECTIONS_FORMAT


def patch_messages(git_log: str, test_text: str, main_text: str, errors: str, mode: str) -> list[dict]:
    """Build the user messages asking for a new implementation."""
    prompt = (
        "Here are the changes that you have made so far since the last time the code passed the tests:\n"
        f"```\n{git_log}\n```\n\n"
        f"Here is the current `{TEST_FILE}`:\n"
        f"```go\n{test_text}\n```\n\n"
        f"And here is the last `{IMPLEMENTATION_FILE}` that you provided:\n"
        f"```go\n{main_text}\n```\n\n"
        "Here are the errors or failures that resulted from `go test`:\n"
        f"```\n{errors}\n```\n\n"
        f"Please write the new code that should be placed in the `{IMPLEMENTATION_FILE}` file.\n"
        "You must make a change to the code if there were any errors.\n"
    )
    messages = [{"role": "user", "content": prompt}]
    if mode == "json":
        messages.append({"role": "user", "content": JSON_FORMAT})
    return messages


def summary_messages(git_log: str) -> list[dict]:
    return [
        {
            "role": "user",
            "content": (
                f"Here is the git log of all the changes you made:\n{git_log}\n\n"
                "Your commit message should describe what the changes accomplished, "
                "not all the details of the code changes themselves."
            ),
        },
        {"role": "user", "content": SUMMARY_FORMAT},
    ]
