"""
social-queue: social platform integration layer.

OAuth adapters for social networks, encrypted credential storage, token
refresh and a retrying publish pipeline.
"""

__version__ = "0.1.0"
