"""Command-line interface for the league history pipeline."""
