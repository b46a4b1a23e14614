"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable. Field names are snake_case
in Python and camelCase on the wire, matching the JSON the frontend
already consumes.
"""

from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class StudentResponseOut(ApiModel):
    """A stored answer as returned after submission."""
    id: str
    student_id: Optional[str] = None
    override_student_id: Optional[str] = None
    feedback_form_id: str
    question_id: str
    response_value: str
    submitted_at: datetime
    is_deleted: bool = False


class SubmittedResponses(ApiModel):
    responses: List[StudentResponseOut]


class SubmitResponsesOut(ApiModel):
    status: str = "success"
    message: str = "Feedback submitted successfully."
    results: int
    data: SubmittedResponses


class SubmissionStatus(ApiModel):
    is_submitted: bool


class SubmissionStatusOut(ApiModel):
    status: str = "success"
    data: SubmissionStatus


class QuestionOut(ApiModel):
    id: str
    text: str
    type: str
    batch: str
    display_order: int
    category_id: str
    faculty_id: str
    subject_id: str


class FormOut(ApiModel):
    id: str
    title: str
    status: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    questions: List[QuestionOut] = []


class FormData(ApiModel):
    form: FormOut


class FormAccessOut(ApiModel):
    status: str = "success"
    data: FormData


class GrantSummary(ApiModel):
    form_id: str
    respondent_kind: str
    created: int
    skipped: int


class GrantSummaryOut(ApiModel):
    status: str = "success"
    data: GrantSummary


class DecodedResponse(ApiModel):
    kind: str
    value: Any = None
    score: Optional[float] = None


class SnapshotOut(ApiModel):
    """Subset of a snapshot row relevant to report consumers."""
    id: str
    original_student_response_id: str
    student_id: Optional[str] = None
    override_student_id: Optional[str] = None
    is_override_student: bool
    student_enrollment_number: str
    student_name: str
    form_id: str
    form_name: str
    question_id: str
    question_text: str
    question_type: str
    question_category_name: str
    faculty_id: str
    faculty_name: str
    subject_id: str
    subject_name: str
    academic_year_string: str
    department_name: str
    semester_number: int
    division_id: str
    division_name: str
    batch: str
    response_value: str
    submitted_at: datetime
    decoded: DecodedResponse


class SnapshotList(ApiModel):
    snapshots: List[SnapshotOut]


class SnapshotListOut(ApiModel):
    status: str = "success"
    results: int
    data: SnapshotList
