"""
Interaction Logger
An authoritative name server and HTTP listener that correlate subdomain
tokens with the addresses that referenced them
"""

from .version import __author__, __version__

__all__ = ["__author__", "__version__"]
