"""Status engine.

Computed status is a pure function of a (nodes, edges, requests) snapshot.
Nothing here writes state back; callers recompute on every read.
"""
