"""
Image acquisition: local paths and remote URLs, plus the per-run workspace.
"""

from .image_source import (
    ImageSource,
    ImageAcquirer,
    RunWorkspace,
)

__all__ = [
    'ImageSource',
    'ImageAcquirer',
    'RunWorkspace',
]
