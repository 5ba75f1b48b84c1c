"""Gracemark EOR Quote Functions - Cloud Functions.

Python Cloud Functions backing the EOR quote comparison tool.

Architecture:
- Quote normalization for nine EOR providers
- USD conversion with cancellable per-role runs
- Enhancement merging, reconciliation against the Deel baseline
- Acid-test profitability of the client bill rate
"""

__version__ = "1.0.0"
