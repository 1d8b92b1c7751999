"""CSV-to-JSON relay for published spreadsheets."""

__version__ = "0.1.0"
