"""Packaged payload templates."""
