"""API route modules."""
from canvasgen.api import generate, settings

__all__ = ["generate", "settings"]
