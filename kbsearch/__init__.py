"""
KBSearch - Hybrid lexical and semantic search over a personal knowledge base.

Example:
    >>> from kbsearch.domains.search import FusionEngine, SearchWeights
    >>> engine = FusionEngine(repo, index, embedder, repo)
    >>> results = await engine.search("oauth refresh", 10, SearchWeights())
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
