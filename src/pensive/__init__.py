"""Pensive: pathway checking and story ranking for fandom taxonomies."""

__version__ = "0.1.0"
