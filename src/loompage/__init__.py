"""Loom & Page - multi-source image resolution for generated e-books."""

__version__ = "0.1.0"
