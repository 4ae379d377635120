"""Synthetic storefront dataset generator for PostgreSQL."""

__version__ = "0.1.0"
