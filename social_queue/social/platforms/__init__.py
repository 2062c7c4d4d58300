"""
Platform adapters.

Each adapter implements the BasePlatform contract for one social network.
"""

from .base import BasePlatform, PublishTarget
from .facebook import FacebookPlatform
from .linkedin import LinkedInPlatform
from .twitter import TwitterPlatform

__all__ = [
    "BasePlatform",
    "FacebookPlatform",
    "LinkedInPlatform",
    "PublishTarget",
    "TwitterPlatform",
]
