"""MemeHub backend application.

A video-meme sharing API. Supabase provides the database, auth and object
storage; this service trims uploads and converts stored clips for download.

Modules:
    - core: Configuration, logging, metrics, tracing, storage backends
    - modules.media: Trim and download pipeline built on ffmpeg
    - modules.memes: Uploads and view/download counters
"""

__version__ = "0.1.0"
