"""
Operation Dispatcher
====================
Maps an operation name to its routine, validates the request and runs it.

Validation happens in three steps before any routine runs:
    1. Routing      the name must be a known ``Operation``
    2. Usage        input count and the operation's parameter schema
    3. Document     page references checked against the input document

``dispatch`` never raises: every outcome is a ``ProcessingResult`` whose
``error_kind`` separates routing, usage and processing failures.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import ValidationError

from . import conversions, pdf_operations as ops
from .errors import (
    MissingInputFileError,
    OperationError,
    OperationUsageError,
    ProcessingError,
    UnknownOperationError,
)
from .models import (
    ErrorKind,
    Operation,
    OperationParams,
    OutputFile,
    ProcessingResult,
    params_model_for,
)
from .storage import FileStorage, OutputSink

__all__ = [
    "OperationDispatcher",
    "OperationError",
    "UnknownOperationError",
    "OperationUsageError",
    "MissingInputFileError",
    "ProcessingError",
    "ROUTINES",
    "INPUT_RULES",
]

logger = logging.getLogger(__name__)

Routine = Callable[[list[Path], OperationParams, OutputSink], None]

ROUTINES: dict[Operation, Routine] = {
    Operation.MERGE_PDF: ops.merge_pdf,
    Operation.SPLIT_PDF: ops.split_pdf,
    Operation.COMPRESS_PDF: ops.compress_pdf,
    Operation.ROTATE_PDF: ops.rotate_pdf,
    Operation.WATERMARK_PDF: ops.watermark_pdf,
    Operation.ORGANIZE_PDF: ops.organize_pdf,
    Operation.PROTECT_PDF: ops.protect_pdf,
    Operation.UNLOCK_PDF: ops.unlock_pdf,
    Operation.REDACT_PDF: ops.redact_pdf,
    Operation.HTML_TO_PDF: ops.html_to_pdf,
    Operation.NUMBER_PAGES: ops.number_pages,
    Operation.REPAIR_PDF: ops.repair_pdf,
    Operation.PDF_TO_PDFA: ops.pdf_to_pdfa,
    Operation.EDIT_PDF: ops.edit_pdf,
    Operation.SIGN_PDF: ops.sign_pdf,
    Operation.CROP_PDF: ops.crop_pdf,
    Operation.SCAN_TO_PDF: ops.scan_to_pdf,
    Operation.OCR_PDF: ops.ocr_pdf,
    Operation.COMPARE_PDF: ops.compare_pdf,
    Operation.JPG_TO_PDF: ops.jpg_to_pdf,
    Operation.PDF_TO_JPG: conversions.pdf_to_jpg,
    Operation.PDF_TO_WORD: conversions.pdf_to_word,
    Operation.WORD_TO_PDF: conversions.word_to_pdf,
    Operation.PDF_TO_EXCEL: conversions.pdf_to_excel,
    Operation.EXCEL_TO_PDF: conversions.excel_to_pdf,
    Operation.PDF_TO_POWERPOINT: conversions.pdf_to_powerpoint,
    Operation.POWERPOINT_TO_PDF: conversions.powerpoint_to_pdf,
}

# (minimum, maximum) inputs; None = unbounded
INPUT_RULES: dict[Operation, tuple[int, Optional[int]]] = {
    Operation.MERGE_PDF: (1, None),
    Operation.JPG_TO_PDF: (1, None),
    Operation.SCAN_TO_PDF: (1, None),
    Operation.COMPARE_PDF: (2, 2),
}
DEFAULT_INPUT_RULE = (1, 1)

# Routines whose parameters reference pages of the input
_PAGE_CHECKED = {
    Operation.REDACT_PDF,
    Operation.SIGN_PDF,
    Operation.EDIT_PDF,
    Operation.ORGANIZE_PDF,
}


def format_validation_error(operation: Operation, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        where = ".".join(str(part) for part in item["loc"]) or "parameters"
        message = item["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        problems.append(f"{where}: {message}")
    return f"Invalid parameters for {operation.value}: " + "; ".join(problems)


class OperationDispatcher:
    """Validates and runs named operations, writing outputs through ``storage``."""

    def __init__(self, storage: FileStorage):
        self.storage = storage

    # ─── Routing ──────────────────────────────────────────────────────────

    def resolve(self, name: Union[str, Operation]) -> Operation:
        if isinstance(name, Operation):
            return name
        try:
            return Operation(name)
        except ValueError:
            raise UnknownOperationError(str(name)) from None

    @staticmethod
    def supported_operations() -> list[str]:
        return [op.value for op in ROUTINES]

    # ─── Validation ───────────────────────────────────────────────────────

    def validate(
        self,
        operation: Operation,
        input_paths: list[str],
        parameters: Optional[dict] = None,
    ) -> OperationParams:
        """
        Parse the parameters and check input counts and page references.

        Raises:
            OperationUsageError: the request cannot be run as given.
            ProcessingError: an input could not be opened for the page check.
        """
        if parameters is not None and not isinstance(parameters, dict):
            raise OperationUsageError(
                f"Invalid parameters for {operation.value}: expected an object"
            )
        try:
            params = params_model_for(operation).model_validate(parameters or {})
        except ValidationError as e:
            raise OperationUsageError(format_validation_error(operation, e)) from None

        self._check_input_count(operation, len(input_paths), params)
        if operation in _PAGE_CHECKED:
            self._check_pages(operation, Path(input_paths[0]), params)
        return params

    def _check_input_count(self, operation: Operation, count: int, params: OperationParams):
        low, high = INPUT_RULES.get(operation, DEFAULT_INPUT_RULE)
        if operation == Operation.HTML_TO_PDF and params.html_content is not None:
            low = 0

        if high is not None and low == high and count != low:
            noun = "file" if low == 1 else "files"
            raise OperationUsageError(
                f"{operation.value} requires exactly {low} input {noun}, got {count}"
            )
        if count < low:
            raise OperationUsageError(
                f"{operation.value} requires at least {low} input file(s), got {count}"
            )
        if high is not None and count > high:
            raise OperationUsageError(
                f"{operation.value} accepts at most {high} input file(s), got {count}"
            )

    def _check_pages(self, operation: Operation, path: Path, params: OperationParams):
        total = ops.page_count(path)

        def require(page: int):
            if page > total:
                raise OperationUsageError(
                    f"Page {page} does not exist in the PDF (total pages: {total})"
                )

        if operation == Operation.REDACT_PDF:
            for area in params.areas:
                require(area.page)
        elif operation in (Operation.SIGN_PDF, Operation.EDIT_PDF):
            require(params.page)
        elif operation == Operation.ORGANIZE_PDF and params.page_order:
            if not any(1 <= n <= total for n in params.page_order):
                raise OperationUsageError("Invalid page order provided")

    # ─── Execution ────────────────────────────────────────────────────────

    def dispatch(
        self,
        operation: Union[str, Operation],
        input_paths: list[str],
        parameters: Optional[dict] = None,
    ) -> ProcessingResult:
        """Validate and run one operation. Never raises."""
        try:
            op = self.resolve(operation)
            params = self.validate(op, input_paths, parameters)
        except OperationError as e:
            logger.info(f"Rejected {getattr(operation, 'value', operation)}: {e}")
            return ProcessingResult.failure(e.kind, str(e))
        except Exception as e:
            logger.error(f"Validation of {getattr(operation, 'value', operation)} crashed: {e}", exc_info=True)
            return ProcessingResult.failure(ErrorKind.PROCESSING, f"Unable to process files: {e}")

        sink = OutputSink(self.storage)
        try:
            ROUTINES[op]([Path(p) for p in input_paths], params, sink)
            if not sink.outputs:
                raise ProcessingError(f"{op.value} produced no output")
            outputs = [
                OutputFile(
                    name=path.name,
                    path=str(path),
                    size_bytes=path.stat().st_size,
                    mime_type=mime_type,
                )
                for path, mime_type in sink.outputs
            ]
        except OperationError as e:
            sink.discard()
            logger.warning(f"{op.value} failed: {e}")
            return ProcessingResult.failure(e.kind, str(e))
        except Exception as e:
            sink.discard()
            logger.error(f"{op.value} crashed: {e}", exc_info=True)
            return ProcessingResult.failure(
                ErrorKind.PROCESSING, f"Unable to process files with {op.value}: {e}"
            )

        for notice in sink.notices:
            logger.info(f"{op.value}: {notice}")
        return ProcessingResult(success=True, output_files=outputs, notices=list(sink.notices))
