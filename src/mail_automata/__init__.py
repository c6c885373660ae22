"""Rule-driven mail thread labeling, sorting and archiving."""

__version__ = "0.1.0"
