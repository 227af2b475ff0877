"""anideck: anime catalog browsing with multi-provider episode source resolution."""

__version__ = "1.0.0"
