"""
TGPH Agent - Storage Package

Reads and writes the series file.
"""

from .series_file import SeriesFile

__all__ = ["SeriesFile"]
