"""Fish Report: intake tickets and inventory reports for the processing plant."""

__version__ = "1.0.0"
