"""Test Driven AI Development: patch code with an LLM until the tests pass."""

__version__ = "0.1.0"
