"""Configuration loading for token_economy."""
