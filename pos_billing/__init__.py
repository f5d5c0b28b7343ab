"""POS billing: order lifecycle and inventory reservation engine."""

__version__ = "1.0.0"
