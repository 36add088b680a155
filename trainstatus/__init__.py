"""
Train status for the NW 9th & Naito intersection in Portland.

Polls a swappable detector on a fixed interval, keeps the latest status
snapshot in memory, and plots TriMet MAX vehicles for the map page.
"""

__version__ = '0.4.0'
