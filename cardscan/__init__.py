"""
Student ID card scanning: card detection, rectification, OCR field
extraction and roster validation.
"""

__version__ = "0.1.0"
