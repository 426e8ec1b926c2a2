"""Command-line entry points: the webhook server and the kubectl plugin."""

from .main import main
from .pi import main as pi_main

__all__ = ["main", "pi_main"]
