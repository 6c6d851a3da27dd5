"""CLI module for starguard."""
