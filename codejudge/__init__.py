"""
Sandboxed judging engine for untrusted submissions.

Submitted code runs in a throwaway, resource-limited container per test case;
failures are classified into a fixed taxonomy and reduced to one verdict.
"""

__version__ = "0.1.0"
