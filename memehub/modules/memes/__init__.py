"""Meme publishing module: uploads and view/download counters."""

from memehub.modules.memes.router import router as memes_router

__all__ = ["memes_router"]
