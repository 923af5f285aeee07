from abc import ABC, abstractmethod

from app.pdf.exceptions import PdfExtractionError


class BasePdfExtractor(ABC):
    """Contract for all PDF text extraction adapters.

    Adapters only pull raw page text out of the binary. Cleaning the text is
    the sanitizer's job, so the result is returned as-is apart from joining
    pages with a blank line.
    """

    PAGE_SEPARATOR = "\n\n"

    def extract(self, pdf_bytes: bytes) -> str:
        """Extract raw text from PDF bytes.

        Raises:
            PdfExtractionError: if the input is not bytes or cannot be parsed.
        """
        if not isinstance(pdf_bytes, (bytes, bytearray)):
            raise PdfExtractionError(
                f"expected PDF bytes, received {type(pdf_bytes).__name__}"
            )
        try:
            pages = self._extract_pages(bytes(pdf_bytes))
        except PdfExtractionError:
            raise
        except Exception as exc:
            raise PdfExtractionError(f"{self.engine} extraction failed: {exc}") from exc
        return self.PAGE_SEPARATOR.join(pages)

    @property
    @abstractmethod
    def engine(self) -> str:
        """Name used in settings and error messages."""

    @abstractmethod
    def _extract_pages(self, pdf_bytes: bytes) -> list[str]:
        """Return the text of each page, in order."""
