"""
FX terminal engine: simulated price feed, SMC signal detection and order management
"""

__version__ = "1.0.0"
