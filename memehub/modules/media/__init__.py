"""Media pipeline module.

Trims uploaded clips and converts stored memes for download using ffmpeg.
"""

from memehub.modules.media.router import router as media_router

__all__ = ["media_router"]
