"""
Content Processors Package

Text processing stages of the ingestion pipeline.

Modules:
--------
- sanitizer: Strips URLs, emails and noise tokens from scraped text
- chunker: Sentence-aligned, word-bounded chunking
- embedder: Embedding generation through the embeddings API
"""
