"""
Data Models
===========
Pydantic models for files, jobs, processing results and the
per-operation parameter schemas.

Records are frozen: registries replace them wholesale with
``model_copy(update=...)`` so a reader never sees a half-written record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ─── Enums ────────────────────────────────────────────────────────────────────


class Operation(str, Enum):
    """Named PDF operations offered by the service."""
    MERGE_PDF = "merge-pdf"
    SPLIT_PDF = "split-pdf"
    COMPRESS_PDF = "compress-pdf"
    ROTATE_PDF = "rotate-pdf"
    WATERMARK_PDF = "watermark-pdf"
    ORGANIZE_PDF = "organize-pdf"
    PROTECT_PDF = "protect-pdf"
    UNLOCK_PDF = "unlock-pdf"
    REDACT_PDF = "redact-pdf"
    HTML_TO_PDF = "html-to-pdf"
    NUMBER_PAGES = "number-pages"
    REPAIR_PDF = "repair-pdf"
    PDF_TO_PDFA = "pdf-to-pdfa"
    EDIT_PDF = "edit-pdf"
    SIGN_PDF = "sign-pdf"
    CROP_PDF = "crop-pdf"
    SCAN_TO_PDF = "scan-to-pdf"
    OCR_PDF = "ocr-pdf"
    COMPARE_PDF = "compare-pdf"
    PDF_TO_JPG = "pdf-to-jpg"
    JPG_TO_PDF = "jpg-to-pdf"
    PDF_TO_WORD = "pdf-to-word"
    WORD_TO_PDF = "word-to-pdf"
    PDF_TO_EXCEL = "pdf-to-excel"
    EXCEL_TO_PDF = "excel-to-pdf"
    PDF_TO_POWERPOINT = "pdf-to-powerpoint"
    POWERPOINT_TO_PDF = "powerpoint-to-pdf"


class FileStatus(str, Enum):
    """Where a registered file came from."""
    UPLOADED = "uploaded"
    PROCESSED = "processed"


class JobStatus(str, Enum):
    """Lifecycle status of a processing job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ErrorKind(str, Enum):
    """Classification of a failed dispatch."""
    ROUTING = "routing"        # operation does not exist
    USAGE = "usage"            # wrong inputs or parameters
    PROCESSING = "processing"  # the routine itself failed


# ─── File Records ─────────────────────────────────────────────────────────────


class NewFile(BaseModel):
    """Everything the File Registry needs to register stored bytes."""
    original_name: str
    stored_name: str
    mime_type: str
    size_bytes: int = Field(ge=0)
    storage_location: str
    status: FileStatus = FileStatus.UPLOADED
    metadata: dict = Field(default_factory=dict)


class FileRecord(NewFile):
    """
    A registered file: an upload or an output of a completed job.
    Only ``status`` may change after creation.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime = Field(default_factory=utcnow)

    def summary(self) -> dict:
        """Short form used in upload and job responses."""
        return {
            "id": self.id,
            "originalName": self.original_name,
            "fileType": self.mime_type,
            "fileSize": self.size_bytes,
            "status": self.status.value,
        }

    def to_payload(self) -> dict:
        data = self.summary()
        data["createdAt"] = _iso(self.created_at)
        return data


# ─── Jobs ─────────────────────────────────────────────────────────────────────


class Job(BaseModel):
    """One request to run an operation against registered input files."""
    model_config = ConfigDict(frozen=True)

    id: str
    operation: Operation
    input_file_ids: list[str]
    parameters: dict = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    output_file_ids: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    notices: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def status_payload(self, output_files: Optional[list[FileRecord]] = None) -> dict:
        """JSON body for ``GET /api/jobs/<id>``."""
        return {
            "id": self.id,
            "operation": self.operation.value,
            "status": self.status.value,
            "progress": self.progress,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
            "errorMessage": self.error_message,
            "outputFiles": [f.summary() for f in (output_files or [])],
            "notices": list(self.notices),
        }


# ─── Processing Results ──────────────────────────────────────────────────────


class OutputFile(BaseModel):
    """A file written by an operation routine."""
    name: str
    path: str
    size_bytes: int = Field(ge=0)
    mime_type: str = "application/pdf"


class ProcessingResult(BaseModel):
    """Outcome of one dispatch. Exactly one of outputs / error is meaningful."""
    success: bool
    output_files: list[OutputFile] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    notices: list[str] = Field(default_factory=list)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "ProcessingResult":
        return cls(success=False, error=message, error_kind=kind)


# ─── Operation Parameters ────────────────────────────────────────────────────


class OperationParams(BaseModel):
    """
    Base for parameter schemas.
    Accepts camelCase keys (``fontSize``) or field names (``font_size``);
    unknown keys are ignored.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class NoParams(OperationParams):
    pass


class RotateParams(OperationParams):
    degrees: int = 90

    @field_validator("degrees")
    @classmethod
    def _quarter_turns(cls, v: int) -> int:
        if v % 90 != 0:
            raise ValueError("Rotation must be a multiple of 90 degrees")
        return v


class WatermarkParams(OperationParams):
    text: str = Field(default="WATERMARK", min_length=1)
    opacity: float = Field(default=0.3, ge=0.0, le=1.0)
    font_size: float = Field(default=50, gt=0)
    position: Literal["center", "diagonal"] = "diagonal"


class OrganizeParams(OperationParams):
    # None: reverse the document
    page_order: Optional[list[int]] = None


class ProtectParams(OperationParams):
    password: str

    @field_validator("password")
    @classmethod
    def _strong_enough(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Password is required for PDF protection")
        if len(v) < 4:
            raise ValueError("Password must be at least 4 characters long")
        return v


class UnlockParams(OperationParams):
    password: str = Field(min_length=1)


class RedactArea(OperationParams):
    """Rectangle in PDF user space (origin bottom-left)."""
    page: int = Field(ge=1)
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class RedactParams(OperationParams):
    areas: list[RedactArea] = Field(min_length=1)


class HtmlToPdfParams(OperationParams):
    html_content: Optional[str] = None


NumberPosition = Literal[
    "bottom-center", "bottom-left", "bottom-right",
    "top-center", "top-left", "top-right",
]


class NumberPagesParams(OperationParams):
    position: NumberPosition = "bottom-center"
    label_format: str = Field(default="Page {n} of {total}", alias="format")
    font_size: float = Field(default=12, gt=0)
    start_page: int = Field(default=1, ge=1)


class TextElement(OperationParams):
    """Text placed with a top-left origin."""
    content: str
    x: float
    y: float
    size: float = Field(default=12, gt=0)


class ShapeElement(OperationParams):
    type: Literal["rectangle", "circle"]
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class EditParams(OperationParams):
    text: list[TextElement] = Field(default_factory=list)
    shapes: list[ShapeElement] = Field(default_factory=list)
    page: int = Field(default=1, ge=1)


class Point(OperationParams):
    x: float
    y: float


class SignParams(OperationParams):
    signature_text: str = Field(default="Digitally Signed", min_length=1)
    position: Optional[Point] = None
    page: int = Field(default=1, ge=1)


class CropParams(OperationParams):
    """Crop box in PDF user space; missing values default to a 10% margin."""
    x: Optional[float] = Field(default=None, ge=0)
    y: Optional[float] = Field(default=None, ge=0)
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    pages: Optional[list[int]] = None


class PdfToJpgParams(OperationParams):
    dpi: int = Field(default=150, ge=36, le=600)


PARAMETER_MODELS: dict[Operation, type[OperationParams]] = {
    Operation.ROTATE_PDF: RotateParams,
    Operation.WATERMARK_PDF: WatermarkParams,
    Operation.ORGANIZE_PDF: OrganizeParams,
    Operation.PROTECT_PDF: ProtectParams,
    Operation.UNLOCK_PDF: UnlockParams,
    Operation.REDACT_PDF: RedactParams,
    Operation.HTML_TO_PDF: HtmlToPdfParams,
    Operation.NUMBER_PAGES: NumberPagesParams,
    Operation.EDIT_PDF: EditParams,
    Operation.SIGN_PDF: SignParams,
    Operation.CROP_PDF: CropParams,
    Operation.PDF_TO_JPG: PdfToJpgParams,
}


def params_model_for(operation: Operation) -> type[OperationParams]:
    return PARAMETER_MODELS.get(operation, NoParams)


# ─── Process Request ─────────────────────────────────────────────────────────


class ProcessRequest(BaseModel):
    """Body of ``POST /api/process``."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    operation: str = Field(min_length=1)
    input_files: list[str] = Field(default_factory=list)
    parameters: dict = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _null_parameters(cls, data):
        if isinstance(data, dict) and data.get("parameters") is None:
            data = {k: v for k, v in data.items() if k != "parameters"}
        return data
