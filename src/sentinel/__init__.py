"""
Sentinel - compliance case management for CTR and Form 8300 filings.
"""

__version__ = "2.0.0"
