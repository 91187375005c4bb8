"""Meeting schedule pipeline.

Normalizes raw meeting sources (ICS files, scraper JSON) into a windowed,
sorted list of concrete meeting occurrences for the static website.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
