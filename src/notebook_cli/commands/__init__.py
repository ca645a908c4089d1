"""Command modules for the onb CLI."""
