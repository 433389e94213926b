"""Bundled sample memes.

Served when the ``memes`` table is unreachable or has no matching row, so the
feed and downloads keep working on a fresh deployment. Their videos are
static files under ``STATIC_ROOT``.
"""

SAMPLE_MEMES = [
    {
        "id": "test-1",
        "title": "Dj Chicken beaten to stupor!",
        "thumbnail_url": "/placeholders/thumb1.jpg",
        "video_url": "/placeholders/video1.mp4",
        "tags": ["djchicken", "viral", "funny"],
        "views": 3500,
        "downloads": 7400,
        "country": "NG",
        "language": "en",
        "description": "A hilarious reaction video",
    },
    {
        "id": "test-2",
        "title": "Unexpected dance in the subway",
        "thumbnail_url": "/placeholders/thumb2.jpg",
        "video_url": "/placeholders/video1.mp4",
        "tags": ["dance", "subway"],
        "views": 124000,
        "downloads": 21000,
        "country": "US",
        "language": "en",
        "description": "Amazing impromptu dance performance",
    },
]
