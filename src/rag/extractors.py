"""Document text extraction for uploaded files.

Supports: XLSX (spreadsheets), DOCX (Word documents).
PDFs arrive as pre-rendered page images; see src.rag.page_extractor.
"""

import logging
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import PurePath

from docx import Document
from openpyxl import load_workbook

logger = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class ExtractionError(Exception):
    """Raised when text extraction fails."""


class UnsupportedFormatError(ExtractionError):
    """Raised when no extractor handles the given file type."""

    def __init__(self, file_type: str):
        self.file_type = file_type
        super().__init__(f"Unsupported file type: {file_type}")


class TextExtractor(ABC):
    """Base class for text extractors."""

    #: Human readable name used in progress messages
    label: str = "file"

    @abstractmethod
    def extract(self, content: bytes) -> str:
        """Extract text from document content."""

    @abstractmethod
    def supported_types(self) -> list[str]:
        """Return list of supported MIME types."""

    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """Return list of supported file extensions (without the dot)."""


class XLSXExtractor(TextExtractor):
    """Extract sheet contents from Excel workbooks using openpyxl."""

    label = "Excel file"

    def extract(self, content: bytes) -> str:
        """Render every sheet as tab-separated rows under a sheet header."""
        try:
            workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
        except Exception as e:
            raise ExtractionError(f"Failed to process XLSX file: {e}") from e

        try:
            sections = []
            for sheet in workbook.worksheets:
                sheet_text = self._sheet_to_text(sheet.iter_rows(values_only=True))
                if sheet_text:
                    sections.append(f"--- Sheet: {sheet.title} ---\n\n{sheet_text}")
        finally:
            workbook.close()

        return "\n\n".join(sections).strip()

    @staticmethod
    def _sheet_to_text(rows) -> str:
        """Tab-join cells, strip trailing tabs and drop blank lines."""
        lines = []
        for row in rows:
            line = "\t".join("" if value is None else str(value) for value in row)
            line = line.rstrip()
            if line.strip():
                lines.append(line)
        return "\n".join(lines)

    def supported_types(self) -> list[str]:
        return [XLSX_MIME]

    def supported_extensions(self) -> list[str]:
        return ["xlsx"]


class DOCXExtractor(TextExtractor):
    """Extract raw text from Word documents using python-docx."""

    label = "Word document"

    def extract(self, content: bytes) -> str:
        """Extract paragraph and table text; formatting is discarded."""
        try:
            doc = Document(BytesIO(content))
        except Exception as e:
            raise ExtractionError(f"Failed to process DOCX file: {e}") from e

        text_parts = [para.text for para in doc.paragraphs]

        for table in doc.tables:
            # Merged cells repeat once per spanned grid position
            seen = set()
            for row in table.rows:
                for cell in row.cells:
                    if cell._tc in seen:
                        continue
                    seen.add(cell._tc)
                    text_parts.append(cell.text)

        return "\n\n".join(part for part in text_parts if part.strip())

    def supported_types(self) -> list[str]:
        return [DOCX_MIME]

    def supported_extensions(self) -> list[str]:
        return ["docx"]


class DocumentExtractor:
    """Unified document extractor that delegates to specific extractors."""

    def __init__(self, extractors: list[TextExtractor] | None = None):
        self.extractors: list[TextExtractor] = extractors or [
            XLSXExtractor(),
            DOCXExtractor(),
        ]

        # Build MIME type and extension mappings
        self._mime_map: dict[str, TextExtractor] = {}
        self._extension_map: dict[str, TextExtractor] = {}
        for extractor in self.extractors:
            for mime_type in extractor.supported_types():
                self._mime_map[mime_type] = extractor
            for extension in extractor.supported_extensions():
                self._extension_map[extension] = extractor

    @staticmethod
    def file_extension(filename: str | None) -> str:
        if not filename:
            return ""
        return PurePath(filename).suffix.lstrip(".").lower()

    def resolve(self, mime_type: str | None, filename: str | None = None) -> TextExtractor:
        """Pick an extractor by MIME type, falling back to the file extension.

        Raises:
            UnsupportedFormatError: Neither the MIME type nor the extension is known
        """
        extractor = self._mime_map.get(mime_type or "")
        if extractor is None:
            extractor = self._extension_map.get(self.file_extension(filename))
        if extractor is None:
            raise UnsupportedFormatError(mime_type or self.file_extension(filename) or "unknown")
        return extractor

    def supports(self, mime_type: str | None, filename: str | None = None) -> bool:
        """Check if a MIME type or file name is supported."""
        try:
            self.resolve(mime_type, filename)
        except UnsupportedFormatError:
            return False
        return True

    def supported_types(self) -> list[str]:
        """Get all supported MIME types."""
        return list(self._mime_map.keys())

    def extract(
        self,
        content: bytes,
        mime_type: str | None,
        filename: str | None = None,
    ) -> str:
        """Extract text from a document based on MIME type or extension.

        Args:
            content: Raw document bytes
            mime_type: Document MIME type as reported by the client
            filename: Original file name, used when the MIME type is unknown

        Returns:
            Extracted text

        Raises:
            ExtractionError: If extraction fails or the type is not supported
        """
        extractor = self.resolve(mime_type, filename)
        logger.debug(f"[Extractor] Using {type(extractor).__name__} for {filename or mime_type}")
        return extractor.extract(content)


# Singleton instance
_extractor: DocumentExtractor | None = None


def get_extractor() -> DocumentExtractor:
    """Get or create the global DocumentExtractor instance."""
    global _extractor
    if _extractor is None:
        _extractor = DocumentExtractor()
    return _extractor
