"""
Anchor-Sentinel: static security analysis for Anchor (Solana) programs.
"""

__version__ = "0.3.0"
