"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- PDF text extraction
- Document chunking with overlap
- Cosine similarity ranking
- Ingestion (chunk, embed, persist)
- Grounded question answering
"""
