"""Command-line interface for token_economy."""
