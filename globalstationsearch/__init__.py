"""
Global Station Search
Local station database built from Channels DVR lineups
"""

__version__ = "2.0.0"
