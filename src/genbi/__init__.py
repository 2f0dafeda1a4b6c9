"""GenBI Agent - conversational SQL over an external AI service."""

__version__ = "0.1.0"
