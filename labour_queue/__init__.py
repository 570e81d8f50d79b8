"""
Labour Queue

A persistent, database-backed labour queue with per-identity admission
rules, wait-rule serialization, and crash reconciliation of running labours.
"""

__version__ = "1.0.0"
