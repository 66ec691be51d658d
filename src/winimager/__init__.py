"""
WinImager - Live Windows system drive backup and restore.

Supervises an external WIM imaging engine and the OS boot-configuration
tools to capture the running system volume and restore it later.
"""

__version__ = "1.0.0"
__author__ = "WinImager Team"

from winimager.core.config import WinImagerConfig
from winimager.core.session import Session

__all__ = ["WinImagerConfig", "Session", "__version__"]
