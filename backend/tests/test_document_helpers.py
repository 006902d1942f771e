"""
MedSnap Backend — Document Helper Tests
=========================================

Tests the pure helpers in services/document_service.py and the request
schemas in schemas/document.py. No database, no storage.

Test Coverage:
    ✅ MIME classification (pdf, word, image, rejected types, parameters)
    ✅ Content sniffing confirms or contradicts the declared kind
    ✅ Filename sanitization and blob path shape
    ✅ Size and emptiness checks
    ✅ Stable sorting by date and by title
    ✅ Filtering by category and search term (title, notes, tags)
    ✅ Category list always contains "General"
    ✅ Metadata schema: defaults, URL check, tag splitting
"""

import uuid
from datetime import datetime, timedelta
from unittest.mock import patch

import magic
import pytest

from medsnap.exceptions import FileStorageError, ValidationError
from medsnap.models.document import FileKind
from medsnap.schemas.document import DocumentUpdate, parse_metadata, split_tags
from medsnap.services.document_service import (
    DocumentView,
    build_blob_path,
    categories,
    classify_file_kind,
    detect_file_kind,
    filter_documents,
    sanitize_filename,
    sort_documents,
    validate_category,
    validate_file_content,
)

BASE_TIME = datetime(2025, 1, 20, 9, 0, 0)


def make_view(title, category="General", tags=None, notes=None, minutes=0):
    return DocumentView(
        id=uuid.uuid4(),
        title=title,
        category=category,
        tags=tags or [],
        notes=notes,
        source_url=None,
        file_path=f"user-1/{title}.pdf",
        file_url="",
        file_type="pdf",
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


# ══════════════════════════════════════════════════════════════════════════
# Upload Helpers
# ══════════════════════════════════════════════════════════════════════════


class TestClassifyFileKind:

    def test_pdf(self):
        assert classify_file_kind("application/pdf") == FileKind.PDF

    def test_word_formats(self):
        assert classify_file_kind("application/msword") == FileKind.WORD
        assert classify_file_kind(
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        ) == FileKind.WORD

    @pytest.mark.parametrize("mime", ["image/png", "image/jpeg", "image/heic", "IMAGE/PNG"])
    def test_any_image(self, mime):
        assert classify_file_kind(mime) == FileKind.IMAGE

    def test_parameters_are_ignored(self):
        assert classify_file_kind("application/pdf; charset=binary") == FileKind.PDF

    @pytest.mark.parametrize("mime", ["text/plain", "application/zip", "application/x-msdownload", "", None])
    def test_rejected_types(self, mime):
        with pytest.raises(ValidationError, match="Unsupported file type") as exc_info:
            classify_file_kind(mime)
        assert exc_info.value.field == "file"


class TestDetectFileKind:
    """Content sniffing through libmagic; container formats are stubbed."""

    def test_pdf_bytes_confirm_pdf(self, sample_pdf_bytes):
        assert detect_file_kind(sample_pdf_bytes, FileKind.PDF) == FileKind.PDF

    def test_png_bytes_confirm_image(self, sample_png_bytes):
        assert detect_file_kind(sample_png_bytes, FileKind.IMAGE) == FileKind.IMAGE

    def test_plain_text_declared_as_pdf(self):
        with pytest.raises(ValidationError, match="does not match") as exc_info:
            detect_file_kind(b"just some notes, not a document\n", FileKind.PDF)
        assert exc_info.value.field == "file"

    def test_pdf_declared_as_image(self, sample_pdf_bytes):
        with pytest.raises(ValidationError) as exc_info:
            detect_file_kind(sample_pdf_bytes, FileKind.IMAGE)
        assert exc_info.value.context["detected_mime"] == "application/pdf"

    @pytest.mark.parametrize("container", ["application/zip", "application/x-ole-storage", "application/CDFV2"])
    def test_word_container_accepted_when_declared_word(self, container):
        with patch("magic.from_buffer", return_value=container):
            assert detect_file_kind(b"PK\x03\x04", FileKind.WORD) == FileKind.WORD

    def test_zip_not_accepted_as_pdf(self):
        with patch("magic.from_buffer", return_value="application/zip"):
            with pytest.raises(ValidationError):
                detect_file_kind(b"PK\x03\x04", FileKind.PDF)

    def test_detection_failure_is_a_storage_error(self):
        with patch("magic.from_buffer", side_effect=magic.MagicException("cannot load magic database")):
            with pytest.raises(FileStorageError, match="Could not verify file type"):
                detect_file_kind(b"%PDF-1.4", FileKind.PDF)


class TestBlobPaths:

    def test_sanitize_replaces_unsafe_characters(self):
        assert sanitize_filename("Sepsis Protocol (2024).pdf") == "Sepsis_Protocol__2024_.pdf"

    def test_sanitize_strips_client_directories(self):
        assert sanitize_filename("C:\\Users\\dr\\ecg.png") == "ecg.png"
        assert sanitize_filename("../../etc/passwd") == "passwd"

    def test_sanitize_empty_name(self):
        assert sanitize_filename("") == "file"
        assert sanitize_filename(None) == "file"

    def test_path_is_owner_scoped(self):
        path = build_blob_path("user-1", "Sepsis Protocol.pdf", now_ms=1718000000000)
        owner, name = path.split("/")
        assert owner == "user-1"
        timestamp, suffix, filename = name.split("-", 2)
        assert timestamp == "1718000000000"
        assert len(suffix) == 8
        assert filename == "Sepsis_Protocol.pdf"

    def test_same_name_same_millisecond_differs(self):
        first = build_blob_path("user-1", "a.pdf", now_ms=1)
        second = build_blob_path("user-1", "a.pdf", now_ms=1)
        assert first != second


class TestFileContent:

    def test_empty_file_rejected(self):
        with pytest.raises(ValidationError, match="empty"):
            validate_file_content(b"")

    def test_oversized_file_rejected(self):
        with pytest.raises(ValidationError, match="File too large"):
            validate_file_content(b"x" * 2048, max_size=1024)

    def test_file_at_limit_accepted(self):
        validate_file_content(b"x" * 1024, max_size=1024)


class TestValidateCategory:

    def test_strips_whitespace(self):
        assert validate_category("  Cardiology ") == "Cardiology"

    def test_empty_rejected(self):
        with pytest.raises(ValidationError, match="Category is required"):
            validate_category("   ")

    def test_too_long_rejected(self):
        with pytest.raises(ValidationError, match="at most 50"):
            validate_category("x" * 51)


# ══════════════════════════════════════════════════════════════════════════
# Query Helpers
# ══════════════════════════════════════════════════════════════════════════


class TestSortDocuments:

    def setup_method(self):
        self.docs = [
            make_view("beta", minutes=1),
            make_view("Alpha", minutes=3),
            make_view("gamma", minutes=2),
        ]

    def test_newest_first(self):
        assert [d.title for d in sort_documents(self.docs, "created_at_desc")] == ["Alpha", "gamma", "beta"]

    def test_oldest_first(self):
        assert [d.title for d in sort_documents(self.docs, "created_at_asc")] == ["beta", "gamma", "Alpha"]

    def test_title_is_case_insensitive(self):
        assert [d.title for d in sort_documents(self.docs, "title_asc")] == ["Alpha", "beta", "gamma"]
        assert [d.title for d in sort_documents(self.docs, "title_desc")] == ["gamma", "beta", "Alpha"]

    def test_equal_keys_keep_input_order(self):
        """Two documents created at the same instant keep their relative order."""
        first = make_view("first", minutes=5)
        second = make_view("second", minutes=5)
        assert sort_documents([first, second], "created_at_desc") == [first, second]
        assert sort_documents([second, first], "created_at_asc") == [second, first]

    def test_unknown_option_rejected(self):
        with pytest.raises(ValidationError, match="Invalid sort"):
            sort_documents(self.docs, "size_desc")


class TestFilterDocuments:

    def setup_method(self):
        self.sepsis = make_view("Sepsis Protocol", category="Emergency", tags=["icu"], notes="Hour-1 bundle")
        self.ecg = make_view("ECG chart", category="Cardiology", tags=["arrhythmia"])
        self.misc = make_view("Dosing table", category="", notes=None)
        self.docs = [self.sepsis, self.ecg, self.misc]

    def test_no_filters_is_identity(self):
        assert filter_documents(self.docs) == self.docs
        assert filter_documents(self.docs, category="", search_term="") == self.docs

    def test_category_exact_match(self):
        assert filter_documents(self.docs, category="Cardiology") == [self.ecg]

    def test_missing_category_counts_as_general(self):
        assert filter_documents(self.docs, category="General") == [self.misc]

    def test_search_title_case_insensitive(self):
        assert filter_documents(self.docs, search_term="SEPSIS") == [self.sepsis]

    def test_search_notes(self):
        assert filter_documents(self.docs, search_term="bundle") == [self.sepsis]

    def test_search_tags_toggle(self):
        assert filter_documents(self.docs, search_term="arrhyth", match_tags=True) == [self.ecg]
        assert filter_documents(self.docs, search_term="arrhyth", match_tags=False) == []

    def test_category_and_search_combine(self):
        assert filter_documents(self.docs, category="Cardiology", search_term="sepsis") == []

    def test_preserves_order(self):
        result = filter_documents(self.docs, search_term="t")
        assert result == [d for d in self.docs if d in result]


class TestCategories:

    def test_sorted_distinct_with_general(self):
        docs = [make_view("a", "Emergency"), make_view("b", "Cardiology"), make_view("c", "Emergency")]
        assert categories(docs) == ["Cardiology", "Emergency", "General"]

    def test_empty_library(self):
        assert categories([]) == ["General"]


# ══════════════════════════════════════════════════════════════════════════
# Request Schemas
# ══════════════════════════════════════════════════════════════════════════


class TestMetadataSchema:

    def test_blank_category_defaults_to_general(self):
        assert parse_metadata(title="Sepsis", category="  ").category == "General"
        assert parse_metadata(title="Sepsis", category=None).category == "General"

    def test_missing_title_rejected(self):
        with pytest.raises(ValidationError, match="title"):
            parse_metadata(title="   ")

    def test_source_url_must_be_http(self):
        with pytest.raises(ValidationError, match="source_url"):
            parse_metadata(title="Sepsis", source_url="not a url")

    def test_source_url_kept_verbatim(self):
        assert parse_metadata(title="Sepsis", source_url="https://who.int").source_url == "https://who.int"

    def test_blank_notes_become_none(self):
        assert parse_metadata(title="Sepsis", notes="  ").notes is None

    def test_split_tags(self):
        assert split_tags(" icu, sepsis,,ICU , ") == ["icu", "sepsis"]
        assert split_tags("") == []
        assert split_tags(None) == []

    def test_update_only_supplied_fields(self):
        update = DocumentUpdate(title="New title", notes="")
        assert update.row_values() == {"title": "New title", "notes": None}
