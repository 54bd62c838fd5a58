"""Vowel mouth-shape tracking from facial landmarks"""

__version__ = "0.1.0"
