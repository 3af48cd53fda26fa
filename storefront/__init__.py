"""Storefront backend: request dispatch, authentication, and payment signature core."""

__version__ = "1.0.0"
