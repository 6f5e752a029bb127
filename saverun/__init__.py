"""
saverun.

Watches a directory tree and re-runs a chain of commands on every
relevant change, killing the previous run first.
Requires Python 3.11+.
"""

__version__ = "0.1.0"
