"""Snapshot naming, compression, cleanup and receiving for syncing key-value databases via blob storage."""

__version__ = "0.1.0"

__all__ = [
    "cleaner",
    "codec",
    "dupsorthack",
    "healthtracker",
    "instanceset",
    "receiver",
    "snapshot",
    "starttracker",
    "storage",
    "utils",
]