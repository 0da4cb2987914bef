"""Utility functions and helpers for sysmon.

Modules:
    platform: Platform class detection
    sources: Bounded subprocess and pseudo-file access
    normalize: Unit conversion and rounding
    formatting: Human readable formatting for text output
"""
