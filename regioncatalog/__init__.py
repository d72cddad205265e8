"""Region/institution catalog ingestion from the VK database API."""

__version__ = "0.3.0"
