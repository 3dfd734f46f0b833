"""
Model, State Machine and Configuration Tests
============================================
"""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from pdftools.config import ServiceConfig, setup_logging
from pdftools.models import (
    FileRecord,
    FileStatus,
    Job,
    JobStatus,
    NoParams,
    NumberPagesParams,
    Operation,
    ProcessRequest,
    ProtectParams,
    RedactParams,
    RotateParams,
    WatermarkParams,
    params_model_for,
)
from pdftools.state_machine import InvalidTransitionError, advance, can_transition
from pdftools.tools import (
    CATEGORIES,
    TOOLS,
    find_tool,
    robots_txt,
    sitemap_xml,
    slugify_title,
    tools_by_category,
)


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestOperation:
    """The operation enum names every tool exactly once."""

    def test_twenty_seven_operations(self):
        assert len(Operation) == 27
        assert len({op.value for op in Operation}) == 27

    def test_lookup_by_name(self):
        assert Operation("merge-pdf") is Operation.MERGE_PDF

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            Operation("make-coffee")


class TestFileRecord:
    """FileRecord payloads."""

    def test_summary_keys(self):
        record = FileRecord(
            id="f1",
            original_name="a.pdf",
            stored_name="upload-1-abc.pdf",
            mime_type="application/pdf",
            size_bytes=10,
            storage_location="/tmp/upload-1-abc.pdf",
        )
        assert record.summary() == {
            "id": "f1",
            "originalName": "a.pdf",
            "fileType": "application/pdf",
            "fileSize": 10,
            "status": "uploaded",
        }
        assert "createdAt" in record.to_payload()

    def test_records_are_frozen(self):
        record = FileRecord(
            id="f1", original_name="a.pdf", stored_name="s", mime_type="application/pdf",
            size_bytes=1, storage_location="/tmp/s",
        )
        with pytest.raises(ValidationError):
            record.status = FileStatus.PROCESSED

    def test_negative_size_rejected(self):
        with pytest.raises(ValidationError):
            FileRecord(
                id="f1", original_name="a.pdf", stored_name="s", mime_type="application/pdf",
                size_bytes=-1, storage_location="/tmp/s",
            )


class TestJob:
    """Job defaults and the polling payload."""

    def test_new_job_is_pending(self):
        job = Job(id="j1", operation=Operation.MERGE_PDF, input_file_ids=["a", "b"])
        assert job.status == JobStatus.PENDING
        assert job.progress == 0
        assert job.output_file_ids == []

    def test_status_payload(self):
        job = Job(id="j1", operation=Operation.SPLIT_PDF, input_file_ids=["a"])
        payload = job.status_payload()
        assert payload["id"] == "j1"
        assert payload["operation"] == "split-pdf"
        assert payload["status"] == "pending"
        assert payload["completedAt"] is None
        assert payload["outputFiles"] == []
        assert payload["notices"] == []

    def test_progress_bounds(self):
        with pytest.raises(ValidationError):
            Job(id="j1", operation=Operation.SPLIT_PDF, input_file_ids=[], progress=101)


class TestParameterModels:
    """Per-operation parameter schemas."""

    def test_camel_case_aliases(self):
        params = NumberPagesParams.model_validate({"fontSize": 9, "startPage": 3, "format": "{n}"})
        assert params.font_size == 9
        assert params.start_page == 3
        assert params.label_format == "{n}"

    def test_rotation_multiple_of_ninety(self):
        assert RotateParams.model_validate({"degrees": 270}).degrees == 270
        with pytest.raises(ValidationError, match="multiple of 90"):
            RotateParams.model_validate({"degrees": 45})

    def test_protect_requires_password(self):
        with pytest.raises(ValidationError):
            ProtectParams.model_validate({})
        with pytest.raises(ValidationError, match="at least 4 characters"):
            ProtectParams.model_validate({"password": "abc"})
        with pytest.raises(ValidationError, match="Password is required"):
            ProtectParams.model_validate({"password": "    "})

    def test_redact_requires_areas(self):
        with pytest.raises(ValidationError):
            RedactParams.model_validate({"areas": []})
        params = RedactParams.model_validate(
            {"areas": [{"page": 1, "x": 10, "y": 20, "width": 30, "height": 40}]}
        )
        assert params.areas[0].width == 30

    def test_watermark_opacity_range(self):
        with pytest.raises(ValidationError):
            WatermarkParams.model_validate({"opacity": 1.5})

    def test_unknown_keys_ignored(self):
        assert isinstance(params_model_for(Operation.MERGE_PDF).model_validate({"x": 1}), NoParams)


class TestProcessRequest:
    """Body of POST /api/process."""

    def test_aliases(self):
        body = ProcessRequest.model_validate({"operation": "merge-pdf", "inputFiles": ["a", "b"]})
        assert body.input_files == ["a", "b"]
        assert body.parameters == {}

    def test_null_parameters(self):
        body = ProcessRequest.model_validate({"operation": "split-pdf", "parameters": None})
        assert body.parameters == {}

    def test_operation_required(self):
        with pytest.raises(ValidationError):
            ProcessRequest.model_validate({"inputFiles": []})


# ═══════════════════════════════════════════════════════════════════════════════
# STATE MACHINE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestJobStateMachine:
    """Legal transitions and their bookkeeping."""

    @pytest.fixture
    def job(self):
        return Job(id="j1", operation=Operation.COMPRESS_PDF, input_file_ids=["a"])

    def test_happy_path(self, job):
        running = advance(job, JobStatus.PROCESSING)
        assert running.started_at is not None
        done = advance(running, JobStatus.COMPLETED, output_file_ids=["o1"])
        assert done.progress == 100
        assert done.completed_at is not None
        assert done.output_file_ids == ["o1"]

    def test_failure_bookkeeping(self, job):
        failed = advance(advance(job, JobStatus.PROCESSING), JobStatus.FAILED, error_message="boom")
        assert failed.progress == 0
        assert failed.error_message == "boom"
        assert failed.output_file_ids == []
        assert failed.completed_at is not None

    def test_failure_default_message(self, job):
        failed = advance(advance(job, JobStatus.PROCESSING), JobStatus.FAILED)
        assert failed.error_message == "Processing failed"

    def test_pending_cannot_complete(self, job):
        with pytest.raises(InvalidTransitionError):
            advance(job, JobStatus.COMPLETED)

    def test_terminal_states_are_final(self):
        for terminal in (JobStatus.COMPLETED, JobStatus.FAILED):
            for target in JobStatus:
                assert not can_transition(terminal, target)
            assert terminal.is_terminal

    def test_original_record_untouched(self, job):
        advance(job, JobStatus.PROCESSING)
        assert job.status == JobStatus.PENDING


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestServiceConfig:
    """Environment and override handling."""

    def test_defaults(self):
        cfg = ServiceConfig.from_env(environ={})
        assert cfg.max_file_size == 100 * 1024 * 1024
        assert cfg.max_files == 10
        assert cfg.workers == 2

    def test_environment_values(self):
        cfg = ServiceConfig.from_env(environ={
            "PDFTOOLS_WORKERS": "4",
            "PDFTOOLS_SITE_URL": "https://example.org",
        })
        assert cfg.workers == 4
        assert cfg.site_url == "https://example.org"

    def test_overrides_win_and_none_is_ignored(self):
        cfg = ServiceConfig.from_env(environ={"PDFTOOLS_WORKERS": "4"}, workers=1, log_level=None)
        assert cfg.workers == 1
        assert cfg.log_level == "INFO"

    def test_invalid_integer(self):
        with pytest.raises(ValueError, match="PDFTOOLS_MAX_FILES"):
            ServiceConfig.from_env(environ={"PDFTOOLS_MAX_FILES": "many"})

    def test_flask_keys(self):
        cfg = ServiceConfig(max_file_size=1024, max_files=2)
        flask_cfg = cfg.to_flask()
        assert flask_cfg["MAX_FILE_SIZE"] == 1024
        assert flask_cfg["MAX_CONTENT_LENGTH"] == 2 * 1024 + 1024 * 1024

    def test_setup_logging_writes_file(self, tmp_path):
        log_file = tmp_path / "logs" / "service.log"
        logger = setup_logging("DEBUG", str(log_file))
        logging.getLogger("pdftools.test").info("hello log")
        for handler in logger.handlers:
            handler.flush()
        assert "hello log" in log_file.read_text(encoding="utf-8")


# ═══════════════════════════════════════════════════════════════════════════════
# TOOL CATALOG TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestToolCatalog:
    """Slugs, categories and crawler documents."""

    def test_slugify(self):
        assert slugify_title("PDF to PDFA") == "pdf-to-pdfa"
        assert slugify_title("PDF to PDF/A") == "pdf-to-pdf-a"
        assert slugify_title("Merge  PDF!") == "merge-pdf"

    def test_every_operation_has_a_tool(self):
        assert {t.operation for t in TOOLS} == {op.value for op in Operation}

    def test_find_tool(self):
        assert find_tool("merge-pdf").operation == "merge-pdf"
        assert find_tool("no-such-tool") is None

    def test_categories_group_all_tools(self):
        grouped = tools_by_category()
        assert list(grouped) == CATEGORIES
        assert sum(len(v) for v in grouped.values()) == len(TOOLS)
        assert [t.operation for t in grouped["Advanced"]] == ["scan-to-pdf", "ocr-pdf", "compare-pdf"]

    def test_sitemap(self):
        xml = sitemap_xml("https://pdf.example.com/")
        assert xml.count("<url>") == len(TOOLS) + 2
        assert "<loc>https://pdf.example.com/</loc>" in xml
        assert "<loc>https://pdf.example.com/faq</loc>" in xml
        assert "<loc>https://pdf.example.com/merge-pdf</loc>" in xml

    def test_robots(self):
        assert robots_txt("https://pdf.example.com") == (
            "User-agent: *\nAllow: /\n\nSitemap: https://pdf.example.com/sitemap.xml\n"
        )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
