"""
Digestbot - News Digest Generator

Collects articles from configurable source groups, summarizes each new one
with a language model (adding a few memes and jokes), and delivers the
digest to the notification groups subscribed to that source group.
"""

__version__ = "0.1.0"
