"""Command-line entry point and interactive session loop."""
