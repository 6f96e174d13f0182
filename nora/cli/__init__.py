"""Command-line interface for the NORA revision engine."""
