"""Debounced live preview."""

from docuright.preview.models import PreviewResult, PreviewSnapshot, PreviewView
from docuright.preview.synchronizer import REQUIRED_FIELDS, PreviewSynchronizer

__all__ = [
    "PreviewResult",
    "PreviewSnapshot",
    "PreviewSynchronizer",
    "PreviewView",
    "REQUIRED_FIELDS",
]
