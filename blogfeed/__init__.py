"""A blog feed: posts and authors in SQL, likes in Redis, served as JSON over HTTP."""

__version__ = "0.1.0"
__all__ = ["__version__"]