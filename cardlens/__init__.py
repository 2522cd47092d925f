"""Card identification, pricing and authenticity pipeline."""

__version__ = "0.1.0"
