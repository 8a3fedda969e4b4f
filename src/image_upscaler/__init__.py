"""Batch image normalization with optional AI upscaling."""

__version__ = "0.1.0"
