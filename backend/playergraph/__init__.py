"""
Player relationship graph package.

This package builds the co-play graph from recorded game sessions, answers
social queries over it, detects player communities and scores pairs of
accounts for alias suspicion.
"""

__version__ = "1.0.0"
