"""Online-judge backend: submission judging, contest scoring and statistics."""

__version__ = "0.1.0"
