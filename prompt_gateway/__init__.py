"""Authenticated gateway turning prompt templates into LLM completions."""
