"""
Output files for the spider.
"""

from .output import LineWriter

__all__ = ['LineWriter']
