"""
REST API for the Markbook engine using FastAPI.
"""

from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from pydantic import BaseModel, Field

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from ..app_logger import get_logger
from ..core.exceptions import (
    MarkbookException, ValidationError, NotFoundError, ConcurrencyError
)
from ..services.academic_service import AcademicService

logger = get_logger("rest_api")


# Pydantic models for API
class MarkUpdate(BaseModel):
    student_id: str = Field(..., min_length=1)
    term_id: str = Field(..., min_length=1)
    sequence_id: str = Field(..., min_length=1)
    subject_id: str = Field(..., min_length=1)
    mark: float
    academic_year_id: Optional[str] = None


class MarkRequest(MarkUpdate):
    editor_id: str = Field(..., min_length=1)


class BulkMarkRequest(BaseModel):
    editor_id: str = Field(..., min_length=1)
    updates: List[MarkUpdate] = Field(..., min_length=1)


class AbsenceRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    term_id: str = Field(..., min_length=1)
    sequence_id: str = Field(..., min_length=1)
    count: int
    editor_id: str = Field(..., min_length=1)
    academic_year_id: Optional[str] = None


class EnrollRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    class_id: str = Field(..., min_length=1)
    academic_year_id: str = Field(..., min_length=1)
    repeating: bool = False


class TermRankRequest(BaseModel):
    class_id: str = Field(..., min_length=1)
    academic_year_id: str = Field(..., min_length=1)
    term_id: str = Field(..., min_length=1)


class SequenceRankRequest(TermRankRequest):
    sequence_id: str = Field(..., min_length=1)


class SubjectRankRequest(SequenceRankRequest):
    subject_id: str = Field(..., min_length=1)


class DisciplineRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    academic_year_id: str = Field(..., min_length=1)
    term_id: str = Field(..., min_length=1)


class RankResponse(BaseModel):
    scope: str
    updated: int
    ranks: Dict[str, int] = {}


class BulkResponse(BaseModel):
    processed: int
    failed_count: int
    failed: List[Dict[str, Any]] = []


def to_http_exception(error: Exception) -> HTTPException:
    """Map an engine error to the HTTP status a client should see."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=error.message)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, ConcurrencyError):
        return HTTPException(status_code=409, detail=error.message)
    if isinstance(error, MarkbookException):
        logger.error("Request failed: %s", error.message)
        return HTTPException(status_code=500, detail=f"Internal error: {error.message}")
    logger.exception("Unexpected error while handling request")
    return HTTPException(status_code=500, detail=f"Internal error: {str(error)}")


class MarkbookRestAPI:
    """REST API over the academic service."""

    def __init__(self, service: AcademicService):
        self._service = service

        # Create FastAPI app
        self.app = FastAPI(
            title="Markbook Academic Records API",
            description="Mark entry, averages, ranks and discipline for school classes",
            version="1.0.0",
            docs_url="/docs",
            redoc_url="/redoc"
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""
        service = self._service

        @self.app.get("/", response_model=Dict[str, str])
        def root():
            return {
                "message": "Markbook Academic Records API",
                "version": "1.0.0",
                "docs": "/docs"
            }

        @self.app.get("/health", response_model=Dict[str, str])
        def health_check():
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        # Mark entry
        @self.app.put("/marks", response_model=Dict[str, Any])
        def record_mark(request: MarkRequest):
            """Record a mark; subject ``absences`` sets the sequence absence count."""
            try:
                record = service.record_mark(
                    request.student_id, request.term_id, request.sequence_id,
                    request.subject_id, request.mark, request.editor_id,
                    academic_year_id=request.academic_year_id
                )
                return record.to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.post("/marks/bulk", response_model=BulkResponse)
        def bulk_record_marks(request: BulkMarkRequest):
            try:
                updates = [update.model_dump() for update in request.updates]
                return service.bulk_record_marks(updates, request.editor_id).to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.put("/absences", response_model=Dict[str, Any])
        def record_absence(request: AbsenceRequest):
            try:
                sequence = service.record_absence(
                    request.student_id, request.term_id, request.sequence_id,
                    request.count, request.editor_id,
                    academic_year_id=request.academic_year_id
                )
                return sequence.to_dict()
            except Exception as e:
                raise to_http_exception(e)

        # Records
        @self.app.post("/records", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
        def enroll_student(request: EnrollRequest):
            try:
                record = service.enroll_student(request.student_id, request.class_id,
                                                request.academic_year_id, request.repeating)
                return record.to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.get("/records/{student_id}/{year_id}", response_model=Dict[str, Any])
        def get_student_record(student_id: str, year_id: str):
            try:
                return service.get_student_record(student_id, year_id).to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.post("/records/{student_id}/{year_id}/archive", response_model=Dict[str, Any])
        def archive_record(student_id: str, year_id: str):
            try:
                return service.archive_record(student_id, year_id).to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.post("/records/{student_id}/{year_id}/reactivate", response_model=Dict[str, Any])
        def reactivate_record(student_id: str, year_id: str):
            try:
                return service.reactivate_record(student_id, year_id).to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.post("/records/{student_id}/{year_id}/averages", response_model=Dict[str, Any])
        def calculate_averages(student_id: str, year_id: str):
            try:
                return service.calculate_averages(student_id, year_id).to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.post("/records/{student_id}/{year_id}/completion", response_model=Dict[str, Any])
        def check_year_completion(student_id: str, year_id: str):
            try:
                completed = service.check_year_completion(student_id, year_id)
                return {"student_id": student_id, "academic_year_id": year_id,
                        "has_completed": completed}
            except Exception as e:
                raise to_http_exception(e)

        @self.app.get("/records/{student_id}/{year_id}/history", response_model=Dict[str, Any])
        def mark_history(student_id: str, year_id: str, term_id: str,
                         sequence_id: str, subject_id: str):
            try:
                history = service.mark_history(student_id, year_id, term_id, sequence_id, subject_id)
                verified = service.verify_history(student_id, year_id, term_id, sequence_id, subject_id)
                return {"history": [change.to_dict() for change in history], "verified": verified}
            except Exception as e:
                raise to_http_exception(e)

        @self.app.get("/records/{student_id}/{year_id}/report-card", response_model=Dict[str, Any])
        def report_card(student_id: str, year_id: str, term_id: Optional[str] = None):
            try:
                return service.report_card(student_id, year_id, term_id)
            except Exception as e:
                raise to_http_exception(e)

        # Ranks
        @self.app.put("/ranks/subject", response_model=RankResponse)
        def calculate_rank(request: SubjectRankRequest):
            try:
                return service.calculate_rank(
                    request.class_id, request.academic_year_id, request.term_id,
                    request.sequence_id, request.subject_id
                ).to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.put("/ranks/sequence", response_model=RankResponse)
        def calculate_sequence_rank(request: SequenceRankRequest):
            try:
                return service.calculate_sequence_rank(
                    request.class_id, request.academic_year_id, request.term_id,
                    request.sequence_id
                ).to_dict()
            except Exception as e:
                raise to_http_exception(e)

        @self.app.put("/ranks/term", response_model=RankResponse)
        def calculate_term_rank(request: TermRankRequest):
            try:
                return service.calculate_term_rank(
                    request.class_id, request.academic_year_id, request.term_id
                ).to_dict()
            except Exception as e:
                raise to_http_exception(e)

        # Discipline
        @self.app.put("/discipline", response_model=Dict[str, str])
        def evaluate_discipline(request: DisciplineRequest):
            try:
                rating = service.evaluate_discipline(request.student_id, request.academic_year_id,
                                                     request.term_id)
                return {"student_id": request.student_id, "term_id": request.term_id,
                        "discipline": rating.value}
            except Exception as e:
                raise to_http_exception(e)

        # Classes
        @self.app.get("/classes/{class_id}/rankings", response_model=List[Dict[str, Any]])
        def class_rankings(class_id: str, academic_year_id: str, term_id: Optional[str] = None):
            try:
                return service.class_rankings(class_id, academic_year_id, term_id)
            except Exception as e:
                raise to_http_exception(e)

        @self.app.get("/classes/{class_id}/at-risk", response_model=List[Dict[str, Any]])
        def students_at_risk(class_id: str, academic_year_id: str, threshold: Optional[float] = None):
            try:
                return service.students_at_risk(class_id, academic_year_id, threshold)
            except Exception as e:
                raise to_http_exception(e)

        @self.app.post("/classes/{class_id}/curriculum-sync", response_model=Dict[str, Any])
        def sync_curriculum(class_id: str, academic_year_id: str):
            try:
                added = service.sync_curriculum(class_id, academic_year_id)
                return {"class_id": class_id, "subjects_added": added}
            except Exception as e:
                raise to_http_exception(e)
