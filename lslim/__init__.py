"""Distributed cluster refinement for LSLIM (local SLIM) recommenders."""

__version__ = "0.1.0"
