"""
Media routing: entry classification, key derivation and the HLS job builder.
"""

from mediamirror.media.classifier import (
    ClassifiedFile,
    MediaKind,
    canonical_key,
    classify,
    content_type_for,
    split_key,
)
from mediamirror.media.rendition import RenditionJobSpec, build_rendition_job

__all__ = [
    "ClassifiedFile",
    "MediaKind",
    "canonical_key",
    "classify",
    "content_type_for",
    "split_key",
    "RenditionJobSpec",
    "build_rendition_job",
]
