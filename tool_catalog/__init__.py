"""GitHub metadata enrichment and health scoring for catalog tools."""

__version__ = "0.1.0"
