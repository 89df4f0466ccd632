"""
Mnemosyne: Content Ingestion and Semantic Retrieval

Turns heterogeneous documents into searchable knowledge:
- Segmentation: boundary-preserving passage chunking
- Embedding: pluggable vector generation
- Storage: delegated vector-index engines behind one store
- Retrieval: cached, memory-aware semantic search with result shaping
"""

__version__ = "0.1.0"
__author__ = "Mnemosyne Team"
