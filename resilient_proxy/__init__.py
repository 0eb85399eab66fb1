"""
Resilient failover proxy for OpenAI-compatible chat completion APIs.
"""

__version__ = "1.0.0"
