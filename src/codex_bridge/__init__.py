"""OpenAI-compatible chat-completions bridge for the Codex CLI agent."""

__version__ = "0.1.0"
