"""
Gomon CLI Package.

Requires Python 3.11+.
"""
