"""Label verification: multi-rotation OCR and field matching for product labels."""

__version__ = "1.0.0"
