"""repolens - multi-granularity analysis of GitHub repositories."""

__version__ = "0.1.0"
