"""Rate limiting adapters.

The sliding-window limiter is the production implementation; the in-memory
fixed-window limiter is its per-process fallback while the shared store is
unreachable.
"""
