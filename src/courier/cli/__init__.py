"""Courier command-line interface (``courier``)."""
