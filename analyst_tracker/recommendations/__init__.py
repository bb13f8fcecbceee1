"""
Recommendation scoring.

Submodules:
  scorer — pure, deterministic scoring of a stock's retained analyst actions.
"""
