"""Tests for text extraction."""

import io
import json

import docx
import pytest
from PyPDF2 import PdfWriter

from docsearch.domain.document import DirectoryPath, FilePath, InlineText, source_from_path
from docsearch.errors import InvalidInputError
from docsearch.pipeline.extract import (
    TextExtractor,
    document_id_for_path,
    document_id_for_text,
)


@pytest.fixture
def extractor():
    return TextExtractor()


class TestFiles:
    def test_plain_text(self, extractor, tmp_path):
        path = tmp_path / "meeting-notes.txt"
        path.write_text("  Notes from the weekly meeting.  \n", encoding="utf-8")

        extracted = extractor.extract_file(path)
        document = extracted.document

        assert extracted.text == "Notes from the weekly meeting."
        assert document.title == "meeting-notes"
        assert document.file_type == "txt"
        assert document.file_size == path.stat().st_size
        assert len(document.checksum) == 64
        assert document.metadata["source"] == "file"
        assert extracted.modified_at is not None

    def test_document_id_is_stable(self, extractor, tmp_path):
        path = tmp_path / "a.md"
        path.write_text("first version", encoding="utf-8")
        first = extractor.extract_file(path).document

        path.write_text("second version", encoding="utf-8")
        second = extractor.extract_file(path).document

        assert first.id == second.id == document_id_for_path(path)
        assert first.checksum != second.checksum

    def test_json_is_pretty_printed(self, extractor, tmp_path):
        path = tmp_path / "data.json"
        path.write_text('{"customer":"Fitzer","items":[1,2]}', encoding="utf-8")

        extracted = extractor.extract_file(path)

        assert json.loads(extracted.text) == {"customer": "Fitzer", "items": [1, 2]}
        assert '\n  "customer": "Fitzer"' in extracted.text
        assert extracted.document.metadata["json_keys"] == ["customer", "items"]

    def test_invalid_json_rejected(self, extractor, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(InvalidInputError, match="Invalid JSON"):
            extractor.extract_file(path)

    def test_csv_rows(self, extractor, tmp_path):
        path = tmp_path / "orders.csv"
        path.write_text("name,amount\nFitzer,100\nTelekom,40\n", encoding="utf-8")

        extracted = extractor.extract_file(path)

        assert extracted.text.splitlines() == [
            "Headers: name,amount",
            "Row 1: Fitzer,100",
            "Row 2: Telekom,40",
        ]
        assert extracted.document.metadata["row_count"] == 2

    def test_html_strips_markup(self, extractor, tmp_path):
        path = tmp_path / "page.html"
        path.write_text(
            "<html><head><title>Fleet &amp; Drones</title><style>p {color: red}</style>"
            "<script>alert('x')</script></head>"
            "<body><p>Drone   fleet</p><p>overview</p></body></html>",
            encoding="utf-8",
        )

        extracted = extractor.extract_file(path)

        assert extracted.document.title == "Fleet & Drones"
        assert "alert" not in extracted.text
        assert "color" not in extracted.text
        assert "Drone fleet overview" in extracted.text
        assert extracted.document.metadata["has_title"] is True

    def test_docx_paragraphs(self, extractor, tmp_path):
        path = tmp_path / "contract.docx"
        document = docx.Document()
        document.add_paragraph("Service contract between Fitzer and the buyer.")
        document.add_paragraph("")
        document.add_paragraph("Term: twelve months.")
        document.save(str(path))

        extracted = extractor.extract_file(path)

        assert extracted.text == (
            "Service contract between Fitzer and the buyer.\n\nTerm: twelve months."
        )
        assert extracted.document.metadata["paragraphs"] == 2
        assert extracted.document.file_type == "docx"

    def test_corrupt_docx_rejected(self, extractor, tmp_path):
        path = tmp_path / "broken.docx"
        path.write_bytes(b"not a zip archive")

        with pytest.raises(InvalidInputError, match="DOCX parsing failed"):
            extractor.extract_file(path)

    def test_blank_pdf(self, extractor, tmp_path):
        writer = PdfWriter()
        writer.add_blank_page(width=200, height=200)
        buffer = io.BytesIO()
        writer.write(buffer)
        path = tmp_path / "scan.pdf"
        path.write_bytes(buffer.getvalue())

        extracted = extractor.extract_file(path)

        assert extracted.text == ""
        assert extracted.document.metadata["pages"] == 1

    def test_corrupt_pdf_rejected(self, extractor, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf")

        with pytest.raises(InvalidInputError):
            extractor.extract_file(path)

    def test_unsupported_extension_rejected(self, extractor, tmp_path):
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(InvalidInputError, match="Unsupported file type"):
            extractor.extract_file(path)

    def test_missing_file_rejected(self, extractor, tmp_path):
        with pytest.raises(InvalidInputError, match="does not exist"):
            extractor.extract_file(tmp_path / "missing.txt")

    def test_restricted_extensions(self, tmp_path):
        path = tmp_path / "notes.md"
        path.write_text("markdown", encoding="utf-8")

        with pytest.raises(InvalidInputError):
            TextExtractor([".txt"]).extract_file(path)


class TestInline:
    def test_named_text(self, extractor):
        extracted = extractor.extract_inline(
            InlineText(text="  Fitzer memo  ", name="memo", metadata={"team": "ops"})
        )
        document = extracted.document

        assert extracted.text == "Fitzer memo"
        assert document.path == "inline:memo"
        assert document.title == "memo"
        assert document.file_type == "text"
        assert document.metadata == {"team": "ops", "source": "inline"}
        assert document.id == document_id_for_text("memo", document.checksum)

    def test_unnamed_text_identified_by_content(self, extractor):
        first = extractor.extract_inline(InlineText(text="same words")).document
        second = extractor.extract_inline(InlineText(text="same words")).document
        other = extractor.extract_inline(InlineText(text="other words")).document

        assert first.id == second.id
        assert first.id != other.id
        assert first.title == "Untitled"
        assert first.path == f"inline:{first.checksum[:16]}"

    def test_empty_text_rejected(self, extractor):
        with pytest.raises(InvalidInputError):
            extractor.extract_inline(InlineText(text="   "))

    def test_bad_metadata_rejected(self, extractor):
        with pytest.raises(InvalidInputError):
            extractor.extract_inline(InlineText(text="text", metadata={"nested": {"a": 1}}))


class TestSources:
    def test_discover_skips_hidden_and_unsupported(self, extractor, docs_dir):
        names = [p.name for p in extractor.discover(docs_dir)]

        assert sorted(names) == ["data.json", "guide.md", "notes.txt"]

    def test_resolve_directory(self, extractor, docs_dir):
        sources = extractor.resolve(DirectoryPath(docs_dir))

        assert len(sources) == 3
        assert all(isinstance(s, FilePath) for s in sources)

    def test_source_from_path(self, docs_dir):
        assert isinstance(source_from_path(docs_dir), DirectoryPath)
        assert isinstance(source_from_path(docs_dir / "notes.txt"), FilePath)
        with pytest.raises(InvalidInputError):
            source_from_path("")
        with pytest.raises(InvalidInputError):
            source_from_path(docs_dir / "missing")

    @pytest.mark.asyncio
    async def test_extract_runs_file_parsing_off_loop(self, extractor, docs_dir):
        extracted = await extractor.extract(FilePath(docs_dir / "notes.txt"))

        assert extracted.text.startswith("Fitzer GmbH")
