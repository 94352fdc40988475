"""Command-line interface for ghostpass."""
