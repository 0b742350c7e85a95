"""Pytest root configuration: makes the repository root importable."""
