"""Store classification, knowledge index access and answer merging."""

__all__ = [
    "answerer",
    "classifier",
    "knowledge",
]
