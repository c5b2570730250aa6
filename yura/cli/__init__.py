"""Command-line interface for Yura."""
