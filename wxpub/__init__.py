"""Batch publisher for WeChat Official Account drafts."""

__version__ = "0.1.0"
