"""Document Surface integration: placeholders, registry and connectors."""
from canvasgen.canvas.connectors import create_connectors, connection_points
from canvasgen.canvas.placeholders import PlaceholderSync, display_prompt
from canvasgen.canvas.registry import PlaceholderRecord, PlaceholderRegistry
from canvasgen.canvas.surface import DocumentSurface, InMemoryDocumentSurface

__all__ = [
    "create_connectors",
    "connection_points",
    "PlaceholderSync",
    "display_prompt",
    "PlaceholderRecord",
    "PlaceholderRegistry",
    "DocumentSurface",
    "InMemoryDocumentSurface",
]
