"""Sunlapse Daylight Timelapse System.

Captures webcam stills between sunrise and sunset at a fixed location and,
at dusk, turns the day's images into a timelapse video and an archive.
"""

__version__ = "1.0.0"
__author__ = "Sunlapse Project"
