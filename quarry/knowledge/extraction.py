"""
Text Extraction

Turns uploaded file bytes into text (or rows, for tabular formats).

Design decisions:
- One extractor keyed by MIME type; unsupported types are rejected up front
- Parser libraries are imported lazily, like the other optional backends
- Every parser failure surfaces as ExtractionError so the ingestion
  pipeline can degrade to placeholder content
"""

import csv
import io

from quarry.core.exceptions import ExtractionError

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT = "text/plain"
CSV = "text/csv"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS = "application/vnd.ms-excel"

DOC_TYPES: dict[str, str] = {
    PDF: "pdf",
    DOCX: "docx",
    TEXT: "txt",
    CSV: "csv",
    XLSX: "xlsx",
    XLS: "xls",
}

TABULAR_TYPES = frozenset({CSV, XLSX, XLS})


def infer_doc_type(mime_type: str) -> str:
    """Short document type recorded with the document metadata."""
    return DOC_TYPES.get(mime_type, "unknown")


def _decode(data: bytes) -> str:
    # BOM-tolerant UTF-8, falling back to latin-1 which never fails
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _header_names(raw: list[object]) -> list[str]:
    names = []
    for i, value in enumerate(raw):
        name = str(value).strip() if value is not None else ""
        names.append(name or f"column_{i + 1}")
    return names


class TextExtractor:
    """Extracts text from PDF, DOCX, plain text, CSV and Excel uploads."""

    def supports(self, mime_type: str) -> bool:
        return mime_type in DOC_TYPES

    def is_tabular(self, mime_type: str) -> bool:
        return mime_type in TABULAR_TYPES

    def extract(self, data: bytes, mime_type: str) -> str:
        try:
            if mime_type == PDF:
                return self._extract_pdf(data)
            if mime_type == DOCX:
                return self._extract_docx(data)
            if mime_type in (TEXT, CSV):
                return _decode(data)
            if mime_type in (XLSX, XLS):
                rows = self._rows_xlsx(data)
                return "\n".join(", ".join(f"{k}: {v}" for k, v in row.items()) for row in rows)
        except ExtractionError:
            raise
        except ImportError:
            raise
        except Exception as e:
            raise ExtractionError(
                f"Failed to extract text from {infer_doc_type(mime_type)} file",
                context={"mime_type": mime_type},
                cause=e,
            ) from e

        raise ExtractionError(
            f"No extractor for {mime_type}",
            context={"mime_type": mime_type},
        )

    def extract_rows(self, data: bytes, mime_type: str) -> list[dict[str, str]]:
        try:
            if mime_type == CSV:
                return self._rows_csv(data)
            if mime_type in (XLSX, XLS):
                return self._rows_xlsx(data)
        except ExtractionError:
            raise
        except ImportError:
            raise
        except Exception as e:
            raise ExtractionError(
                f"Failed to read rows from {infer_doc_type(mime_type)} file",
                context={"mime_type": mime_type},
                cause=e,
            ) from e

        raise ExtractionError(
            f"{mime_type} is not a tabular type",
            context={"mime_type": mime_type},
        )

    def _extract_pdf(self, data: bytes) -> str:
        try:
            from pypdf import PdfReader
        except ImportError:
            raise ImportError("pypdf required. Install with: pip install pypdf")

        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        return "\n\n".join(p for p in pages if p.strip())

    def _extract_docx(self, data: bytes) -> str:
        try:
            from docx import Document
        except ImportError:
            raise ImportError("python-docx required. Install with: pip install python-docx")

        document = Document(io.BytesIO(data))
        return "\n".join(p.text for p in document.paragraphs if p.text.strip())

    def _rows_csv(self, data: bytes) -> list[dict[str, str]]:
        reader = csv.reader(io.StringIO(_decode(data)))
        header: list[str] | None = None
        rows = []

        for record in reader:
            if not any(cell.strip() for cell in record):
                continue
            if header is None:
                header = _header_names(list(record))
                continue
            rows.append(
                {
                    header[i] if i < len(header) else f"column_{i + 1}": cell.strip()
                    for i, cell in enumerate(record)
                }
            )
        return rows

    def _rows_xlsx(self, data: bytes) -> list[dict[str, str]]:
        try:
            from openpyxl import load_workbook
        except ImportError:
            raise ImportError("openpyxl required. Install with: pip install openpyxl")

        # Legacy binary .xls workbooks fail here and fall back to placeholder text
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        rows: list[dict[str, str]] = []

        try:
            for sheet in workbook.worksheets:
                header: list[str] | None = None
                for values in sheet.iter_rows(values_only=True):
                    if not any(v is not None and str(v).strip() for v in values):
                        continue
                    if header is None:
                        header = _header_names(list(values))
                        continue
                    rows.append(
                        {
                            header[i] if i < len(header) else f"column_{i + 1}": (
                                "" if value is None else str(value)
                            )
                            for i, value in enumerate(values)
                        }
                    )
        finally:
            workbook.close()

        return rows
