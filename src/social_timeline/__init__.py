"""
Social Timeline - Unified Mastodon and Bluesky timeline client

A Python tool for reading a merged home timeline from several Mastodon
and Bluesky accounts, following conversations, reacting to posts and
cross-posting, with all network work kept off the interactive loop.
"""

__version__ = "0.1.0"
__author__ = "Social Timeline Contributors"
__license__ = "MIT"

# Version info tuple for programmatic access
VERSION_INFO = tuple(map(int, __version__.split(".")))
