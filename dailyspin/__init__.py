"""
Daily Spin - turns the day's news into songs and a short podcast.
"""

__version__ = '1.0.0'
