"""University-support ask backend: direct Gemini answers and campus store search."""

__all__ = [
    "api",
    "bootstrap",
    "service",
    "settings",
]
