"""
External video encoder.
"""

from mediamirror.encoder.mediaconvert import MediaConvertEncoder

__all__ = ["MediaConvertEncoder"]
