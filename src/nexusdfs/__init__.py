"""Captain-mode lineup optimizer and portfolio builder."""

__version__ = "0.1.0"
