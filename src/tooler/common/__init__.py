"""Shared helpers: logging, async HTTP, filesystem and subprocess plumbing."""
