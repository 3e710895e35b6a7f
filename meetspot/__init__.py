"""Meetspot: fair meeting points and ranked venues for small groups"""

__version__ = "0.1.0"
