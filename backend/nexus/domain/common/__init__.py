"""Errors shared across the domain packages."""
