"""
Playlist engagement pipeline.

Polls listeners' recently played tracks, derives listening sessions and
maintains daily, link-level and cohort retention metrics.
"""

__version__ = "0.1.0"
