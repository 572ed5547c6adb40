"""volm -- Kubernetes PersistentVolumeClaim usage API.

Mirrors the claims and pods of one namespace via list-then-watch and answers
"which pods use this claim" queries from memory.
"""

__version__ = "0.2.0"
