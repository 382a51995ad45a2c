"""mermaidview: render Mermaid markup into a pannable, zoomable Qt view."""

__version__ = "0.1.0"
