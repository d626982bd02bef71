"""
Book catalog storage core: chunked persistence over a key-value medium,
a reversible payload transform, and duplicate resolution for record
collections.
"""

__version__ = "1.0.0"
