"""CLI sub-commands. Each exposes ``run``-style functions taking parsed args."""
