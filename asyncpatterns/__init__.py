"""Asynchronous programming patterns: coroutines, actors, a key-value store, an event bus and a small polling runtime."""

__version__ = "0.1.0"