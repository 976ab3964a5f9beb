"""
DuoChat - single-user chat client over two interchangeable streaming backends.
"""

__version__ = "0.1.0"
