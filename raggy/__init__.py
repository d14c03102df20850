"""Raggy: document question-answering API with conversational memory."""

__version__ = "1.0.0"
