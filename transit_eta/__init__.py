"""
Transit ETA Engine - Core Package

Batch estimation of vehicle arrival times at upcoming stops:
- Haversine baseline with heuristic and historical corrections
- Weighted fusion with an external routing service
- Bounded confidence scoring
- Per-item failure isolation across a worker pool
"""

__version__ = "1.0.0"
