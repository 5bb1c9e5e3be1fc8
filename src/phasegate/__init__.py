"""Phase tracking and quality gates for SDLC-driven coding assistants."""

__version__ = "0.1.0"
