"""Convert any web page into clean, LLM-ready markdown."""

__version__ = "0.1.0"
