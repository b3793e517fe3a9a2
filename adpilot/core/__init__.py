"""Core turn logic: workflow parsing, prompts, tools, model streaming."""
