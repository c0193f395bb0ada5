"""Flask playground for the completion aggregator (see web.py)."""
from __future__ import annotations
from .web import app, main

__all__ = ["app", "main"]
