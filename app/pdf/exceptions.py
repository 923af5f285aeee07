class PdfExtractionError(Exception):
    """Raised when a PDF cannot be read. Retrying will not help."""
