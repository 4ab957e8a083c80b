"""Command-line entry points for DevFlow."""
