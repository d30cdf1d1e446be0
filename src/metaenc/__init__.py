"""metaenc (Python Meta Encoder)

Batch-encodes rendered audio into tagged output formats with ffmpeg, driven by
a JSON description of albums and tracks.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"
