"""
Embedding service adapters.
"""

from .embedder import Embedder, OpenAIEmbedder

__all__ = ["Embedder", "OpenAIEmbedder"]
