"""
Export helpers for recommendations.

Submodules:
  export — CSV / JSON writers and the recommendation flattener.
"""
