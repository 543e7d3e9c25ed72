"""
LiveRead: stable text capture from live document video.
"""

__version__ = "0.1.0"
