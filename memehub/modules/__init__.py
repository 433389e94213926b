"""Application modules.

- media: Video trimming and download format conversion
- memes: Meme uploads and counters
"""
