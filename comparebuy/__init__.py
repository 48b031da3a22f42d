"""CompareBuy — product catalog API and side-by-side feature comparison."""

__version__ = "1.0.0"
