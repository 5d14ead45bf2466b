"""Festbook - booking lifecycle, slot allocation and deadline notifications"""

__version__ = "1.0.0"
