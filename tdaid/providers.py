"""Completion providers.

The loop depends only on the `CompletionProvider` protocol: a blocking `generate`
and an incremental `stream`. There is one implementation per backing service.
"""

from collections.abc import Iterator, Sequence
from typing import Protocol

import anthropic
import openai
from pydantic import BaseModel

from tdaid.errors import ConfigError, TransportError

OPENAI_MODEL = "gpt-4o-2024-08-06"
ANTHROPIC_MODEL = "claude-3-5-sonnet-20240620"
ANTHROPIC_MAX_TOKENS = 1024 * 8


class CompletionProvider(Protocol):
    def generate(
        self,
        system: str,
        messages: Sequence[dict],
        schema: type[BaseModel] | None = None,
    ) -> str: ...

    def stream(self, system: str, messages: Sequence[dict]) -> Iterator[str]: ...


class OpenAIProvider:
    """Chat completions against the OpenAI API.

    The client picks up OPENAI_API_KEY when the provider is constructed.
    """

    def __init__(self, model: str | None = None, client: openai.OpenAI | None = None) -> None:
        self.model = model or OPENAI_MODEL
        self._client = client if client is not None else openai.OpenAI()

    def _request(self, system: str, messages: Sequence[dict]) -> dict:
        return {
            "model": self.model,
            "messages": [{"role": "system", "content": system}, *messages],
        }

    def generate(
        self,
        system: str,
        messages: Sequence[dict],
        schema: type[BaseModel] | None = None,
    ) -> str:
        kwargs = self._request(system, messages)
        if schema is not None:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self._client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise TransportError(f"OpenAI request failed: {e}") from e

        if not response.choices:
            raise TransportError("OpenAI returned no choices")
        text = response.choices[0].message.content
        if not text:
            raise TransportError("OpenAI returned an empty message")
        return text

    def stream(self, system: str, messages: Sequence[dict]) -> Iterator[str]:
        kwargs = self._request(system, messages)
        try:
            for chunk in self._client.chat.completions.create(**kwargs, stream=True):
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.APIError as e:
            raise TransportError(f"OpenAI stream failed: {e}") from e


class AnthropicProvider:
    """Messages API against Anthropic.

    There is no JSON mode, so structured requests prefill the assistant turn
    with "{" and put it back on the front of the returned text.
    """

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int = ANTHROPIC_MAX_TOKENS,
        client: anthropic.Anthropic | None = None,
    ) -> None:
        self.model = model or ANTHROPIC_MODEL
        self.max_tokens = max_tokens
        self._client = client if client is not None else anthropic.Anthropic()

    def generate(
        self,
        system: str,
        messages: Sequence[dict],
        schema: type[BaseModel] | None = None,
    ) -> str:
        msgs = list(messages)
        if schema is not None:
            msgs.append({"role": "assistant", "content": "{"})

        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=msgs,
            )
        except anthropic.APIError as e:
            raise TransportError(f"Anthropic request failed: {e}") from e

        if not response.content or response.content[0].type != "text":
            raise TransportError("Unexpected response type from Anthropic")

        text = response.content[0].text
        if schema is not None:
            text = "{" + text
        return text

    def stream(self, system: str, messages: Sequence[dict]) -> Iterator[str]:
        try:
            with self._client.messages.stream(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=list(messages),
            ) as stream:
                yield from stream.text_stream
        except anthropic.APIError as e:
            raise TransportError(f"Anthropic stream failed: {e}") from e


def make_provider(name: str, model: str | None = None) -> CompletionProvider:
    if name == "openai":
        return OpenAIProvider(model)
    if name == "anthropic":
        return AnthropicProvider(model)
    raise ConfigError(f"unknown provider: {name!r} (expected 'openai' or 'anthropic')")
