"""Command templates executed on remote hosts."""

from .pipeline import render_capture_command

__all__ = ["render_capture_command"]
