from typing import Dict, List, Optional, Union
import logging

from cdm import Diagnostic, Dialect, ScanReport, ScanStatus
from edi_scanner import EdiScanner
from schema_manager import SchemaManager

logger = logging.getLogger(__name__)

class ValidationFinding:
    """Container for a single validation finding."""
    def __init__(self, level: str, code: str, message: str, location: Optional[dict] = None):
        self.level = level
        self.code = code
        self.message = message
        self.location = location or {}

    def to_dict(self) -> dict:
        return {"level": self.level, "code": self.code, "message": self.message, "location": self.location}

class ValidationReport:
    """Container for validation results."""
    def __init__(self, valid: bool, findings: List[ValidationFinding], status: ScanStatus = ScanStatus.COMPLETED,
                 diagnostics: Optional[List[Diagnostic]] = None, version: Optional[str] = None):
        self.valid = valid
        self.findings = findings
        self.status = status
        self.diagnostics = diagnostics or []
        self.version = version

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "status": self.status.value,
            "version": self.version,
            "findings": [f.to_dict() for f in self.findings],
        }

class DiagnosticCollection:
    """Diagnostics sink keyed by document id. Every `set` replaces what was there."""

    def __init__(self, name: str = "edi"):
        self.name = name
        self._entries: Dict[str, List[Diagnostic]] = {}

    def set(self, document_id: str, diagnostics: List[Diagnostic]):
        self._entries[document_id] = list(diagnostics)

    def get(self, document_id: str) -> List[Diagnostic]:
        return list(self._entries.get(document_id, []))

    def delete(self, document_id: str):
        self._entries.pop(document_id, None)

    def clear(self):
        self._entries.clear()

    def __contains__(self, document_id: str) -> bool:
        return document_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

class EDIValidationService:
    """Service for EDI document validation, publishing per-document diagnostics to a sink."""

    def __init__(
        self,
        schema_base_path: str = "schemas",
        schema_manager: Optional[SchemaManager] = None,
        diagnostics: Optional[DiagnosticCollection] = None,
    ):
        self.schema_manager = schema_manager or SchemaManager(schema_base_path=schema_base_path)
        self.scanner = EdiScanner(self.schema_manager)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollection()
        self._revisions: Dict[str, int] = {}
        self._versions: Dict[str, str] = {}

    def validate_edi(self, edi_content: str, dialect: Union[Dialect, str, None] = None) -> ValidationReport:
        """
        Validate EDI content against the schemas of its detected version.

        Args:
            edi_content: The EDI document content
            dialect: Optional explicit dialect; detected from the content when omitted

        Returns:
            ValidationReport containing validation status and findings
        """
        try:
            logger.info(f"Starting EDI validation (dialect: {dialect or 'auto'})")
            report = self.scanner.scan(edi_content, dialect)
            return self._to_report(report)

        except Exception as e:
            logger.error(f"EDI validation failed: {e}", exc_info=True)

            error_finding = ValidationFinding(
                level="error",
                code="VALIDATION_ERROR",
                message=f"Validation failed: {str(e)}",
                location={
                    "context": "DOCUMENT",
                    "segment_id": "DOCUMENT",
                    "line_number": 1
                }
            )
            return ValidationReport(valid=False, findings=[error_finding])

    def _to_report(self, report: ScanReport) -> ValidationReport:
        if report.status == ScanStatus.NO_ENVELOPE:
            finding = ValidationFinding(
                level="error",
                code="NO_ENVELOPE",
                message=report.message,
                location={"context": "DOCUMENT", "segment_id": "DOCUMENT", "line_number": 1},
            )
            return ValidationReport(valid=False, findings=[finding], status=report.status)

        findings = []
        for d in report.diagnostics:
            findings.append(ValidationFinding(
                level=d.severity.value,
                code=d.kind.value,
                message=d.message,
                location={
                    "context": d.location,
                    "segment_id": d.segment or "UNKNOWN",
                    "line_number": d.line + 1,
                    "start_col": d.start_col,
                    "end_col": d.end_col,
                },
            ))
        is_valid = report.error_count == 0
        logger.info(f"Validation completed: valid={is_valid}, findings={len(findings)}")
        return ValidationReport(
            valid=is_valid,
            findings=findings,
            status=report.status,
            diagnostics=report.diagnostics,
            version=report.context.version if report.context else None,
        )

    def notify_change(self, document_id: str, revision: int):
        """Record an edit. Results computed for older revisions will not be published."""
        self._revisions[document_id] = revision
        self._versions.pop(document_id, None)

    def validate_document(
        self,
        document_id: str,
        text: str,
        revision: Optional[int] = None,
        dialect: Union[Dialect, str, None] = None,
    ) -> Optional[ValidationReport]:
        """
        Validate one open document and publish its diagnostics to the sink.

        Returns None, publishing nothing, when a newer revision was announced while validating.
        """
        if revision is not None:
            latest = self._revisions.get(document_id)
            if latest is not None and revision < latest:
                logger.debug(f"Skipping stale validation of {document_id} (revision {revision} < {latest})")
                return None
            self._revisions[document_id] = revision

        result = self.validate_edi(text, dialect)

        latest = self._revisions.get(document_id)
        if revision is not None and latest is not None and revision < latest:
            logger.debug(f"Discarding stale results for {document_id} (revision {revision} < {latest})")
            return None

        if result.version:
            self._versions[document_id] = result.version
        self.diagnostics.set(document_id, result.diagnostics)
        return result

    def document_version(self, document_id: str) -> Optional[str]:
        """Schema version last used for a document, if it has been validated since its last change."""
        return self._versions.get(document_id)

    def clear(self, document_id: str):
        self.diagnostics.delete(document_id)
        self._revisions.pop(document_id, None)
        self._versions.pop(document_id, None)
