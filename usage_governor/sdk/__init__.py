"""
SDK for Usage Governor.

Provides metered clients that record priced calls into a session registry.
"""

from .openai_client import MeteredOpenAI

__all__ = ["MeteredOpenAI"]
