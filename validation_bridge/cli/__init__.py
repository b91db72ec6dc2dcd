"""Command-line interface for validation-bridge."""
