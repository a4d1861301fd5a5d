"""
kn-migration: move Knative services and their revision history from one
cluster (or namespace) to another.
"""

__version__ = "0.1.0"
