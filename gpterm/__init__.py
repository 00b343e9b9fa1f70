"""
gpterm: a terminal chat client for streaming completion endpoints.
"""

__version__ = "0.1.0"
