"""Command-line interface for configurer."""
