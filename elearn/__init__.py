"""elearn - PDF ingestion and grounded chat over uploaded course material."""

__version__ = "0.1.0"
