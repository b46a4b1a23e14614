"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories and
enforce the feedback rules. Services raise `errors.AppError` subclasses;
the API layer maps them to HTTP responses.

The central piece is `SubmissionService.submit`, which turns a one-time
access token and a `{question_id: value}` payload into stored responses
and reporting snapshots inside a single transaction.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union
from sqlmodel import Session
from . import models, repositories
from .config import settings
from .errors import (
    AppError,
    AlreadySubmittedError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    RequestValidationFailed,
)
from .utils.response_values import decode_response, encode_response

logger = logging.getLogger("feedback.submission")
grants_logger = logging.getLogger("feedback.grants")


def _as_utc(value: datetime) -> datetime:
    """SQLite hands datetimes back without tzinfo; they are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _system_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EnrolledRespondent:
    student: models.Student


@dataclass(frozen=True)
class OverrideRespondent:
    override_student: models.OverrideStudent


Respondent = Union[EnrolledRespondent, OverrideRespondent]


def _integrity_failure(what: str, grant: models.FormAccess) -> InternalError:
    logger.error(
        "Missing %s for feedback snapshot: %s",
        what,
        json.dumps({
            "form_access_id": grant.id,
            "form_id": grant.form_id,
            "student_id": grant.student_id,
            "override_student_id": grant.override_student_id,
        }),
    )
    return InternalError(f"Internal server error: Missing essential {what} for snapshot creation.")


class AccessGate:
    """Token checks shared by submission and form access.

    Each step raises the error for the first rule the grant breaks.
    """
    def __init__(self, session: Session, clock: Optional[Callable[[], datetime]] = None):
        self.session = session
        self.clock = clock or _system_clock
        self.grant_repo = repositories.AccessGrantRepository(session)

    def load(self, token: str) -> models.FormAccess:
        """Resolve `token` to a grant whose form still exists."""
        grant = self.grant_repo.get_by_token(token)
        if not grant:
            raise NotFoundError("Invalid access token.")
        if grant.form is None or grant.form.is_deleted:
            raise NotFoundError("Form not found or is deleted.")
        return grant

    def open_for_submission(self, token: str) -> models.FormAccess:
        """Resolve `token` and require an active, in-window, unused grant."""
        grant = self.load(token)
        form = grant.form
        if form.status != models.FormStatus.ACTIVE:
            raise ForbiddenError("Form is not currently active for submission.")
        # still open when now == end_date
        if form.end_date is not None and self.clock() > _as_utc(form.end_date):
            raise ForbiddenError("Form submission period has ended.")
        if grant.is_submitted:
            raise AlreadySubmittedError()
        return grant


class SubmissionService:
    """Submit feedback and report submission status for access tokens."""
    def __init__(self, session: Session, clock: Optional[Callable[[], datetime]] = None,
                 strict_question_ids: Optional[bool] = None):
        self.session = session
        self.clock = clock or _system_clock
        self.strict_question_ids = settings.STRICT_QUESTION_IDS if strict_question_ids is None else strict_question_ids
        self.gate = AccessGate(session, clock=self.clock)
        self.grant_repo = self.gate.grant_repo
        self.question_repo = repositories.QuestionRepository(session)
        self.division_repo = repositories.DivisionRepository(session)
        self.submission_repo = repositories.SubmissionRepository(session)

    def submit(self, token: str, responses: Dict[str, Any]) -> List[models.StudentResponse]:
        """Persist one submission for `token`.

        Returns the created `StudentResponse` rows in payload order.
        Question ids that are unknown, belong to another form or are
        soft-deleted are skipped unless strict mode is enabled, in which
        case the whole submission is rejected.
        """
        grant = self.gate.open_for_submission(token)
        form = grant.form
        respondent = self._resolve_respondent(grant)
        allocation = form.subject_allocation
        if allocation is None or allocation.faculty is None or allocation.subject is None:
            raise _integrity_failure("form data", grant)

        questions = self.question_repo.list_for_submission(form.id, list(responses))
        by_id = {q.id: q for q in questions}
        unknown = [qid for qid in responses if qid not in by_id]
        if unknown:
            if self.strict_question_ids:
                raise RequestValidationFailed(f"Unknown question ids for this form: {', '.join(unknown)}")
            logger.warning(
                "Skipping %d response(s) for form %s: questions not found in form or deleted: %s",
                len(unknown), form.id, unknown,
            )

        student_fields = self._student_fields(respondent)
        academic_fields = self._academic_fields(respondent, allocation)

        # every value must encode before the transaction opens
        answers = []
        for question_id, value in responses.items():
            question = by_id.get(question_id)
            if question is None:
                continue
            try:
                answers.append((question, encode_response(value)))
            except (TypeError, ValueError):
                raise RequestValidationFailed(f"Invalid response value for question {question_id}.")

        created = []
        try:
            submitted_at = self.clock()
            if not self.grant_repo.claim(grant.id):
                raise AlreadySubmittedError()
            for question, raw_value in answers:
                response = self.submission_repo.add_response(models.StudentResponse(
                    student_id=grant.student_id if isinstance(respondent, EnrolledRespondent) else None,
                    override_student_id=grant.override_student_id if isinstance(respondent, OverrideRespondent) else None,
                    feedback_form_id=form.id,
                    question_id=question.id,
                    response_value=raw_value,
                    submitted_at=submitted_at,
                ))
                self.submission_repo.add_snapshot(models.FeedbackSnapshot(
                    original_student_response_id=response.id,
                    **student_fields,
                    **self._form_fields(form),
                    **self._question_fields(question),
                    **academic_fields,
                    response_value=raw_value,
                    batch=question.batch,
                    submitted_at=submitted_at,
                ))
                created.append(response)
            self.session.commit()
        except AppError:
            self.session.rollback()
            raise
        except Exception:
            self.session.rollback()
            logger.exception("Submission for form %s failed; transaction rolled back", form.id)
            raise InternalError("Failed to submit feedback.")
        logger.info("Stored %d response(s) for form %s", len(created), form.id)
        return created

    def check_status(self, token: str) -> Dict[str, bool]:
        """Return `{'is_submitted': bool}` for `token` without side effects."""
        grant = self.gate.load(token)
        return {'is_submitted': bool(grant.is_submitted)}

    def _resolve_respondent(self, grant: models.FormAccess) -> Respondent:
        if bool(grant.student_id) == bool(grant.override_student_id):
            raise _integrity_failure("student data (grant must name exactly one respondent)", grant)
        if grant.student_id:
            student = grant.student
            if (student is None or student.academic_year is None or student.semester is None
                    or student.division is None):
                raise _integrity_failure("student data", grant)
            return EnrolledRespondent(student)
        if grant.override_student is None:
            raise _integrity_failure("override student data", grant)
        return OverrideRespondent(grant.override_student)

    @staticmethod
    def _student_fields(respondent: Respondent) -> Dict[str, Any]:
        if isinstance(respondent, EnrolledRespondent):
            s = respondent.student
            return {
                'student_id': s.id,
                'override_student_id': None,
                'is_override_student': False,
                'student_enrollment_number': s.enrollment_number,
                'student_name': s.name,
                'student_email': s.email,
            }
        o = respondent.override_student
        return {
            'student_id': None,
            'override_student_id': o.id,
            'is_override_student': True,
            'student_enrollment_number': o.enrollment_number or '',
            'student_name': o.name,
            'student_email': o.email,
        }

    def _academic_fields(self, respondent: Respondent, allocation: models.SubjectAllocation) -> Dict[str, Any]:
        """Academic year/department/semester/division for the snapshot.

        Enrolled students carry these directly. Override students have no
        such links, so the division the form was allocated to stands in,
        with the roster's free text as the last resort.
        """
        if isinstance(respondent, EnrolledRespondent):
            s = respondent.student
            department = s.semester.department
            return {
                'academic_year_id': s.academic_year.id,
                'academic_year_string': s.academic_year.year_string,
                'academic_year_is_deleted': s.academic_year.is_deleted,
                'department_id': s.semester.department_id,
                'department_name': department.name if department else '',
                'department_abbreviation': department.abbreviation if department else '',
                'department_is_deleted': department.is_deleted if department else False,
                'semester_id': s.semester.id,
                'semester_number': s.semester.semester_number,
                'semester_is_deleted': s.semester.is_deleted,
                'division_id': s.division.id,
                'division_name': s.division.division_name,
                'division_is_deleted': s.division.is_deleted,
            }
        o = respondent.override_student
        division = self.division_repo.get_with_parents(allocation.division_id)
        semester = division.semester if division else None
        department = semester.department if semester else None
        year = semester.academic_year if semester else None
        return {
            'academic_year_id': year.id if year else '',
            'academic_year_string': year.year_string if year else '',
            'academic_year_is_deleted': year.is_deleted if year else False,
            'department_id': semester.department_id if semester else '',
            'department_name': (department.name if department else '') or o.department or '',
            'department_abbreviation': department.abbreviation if department else '',
            'department_is_deleted': department.is_deleted if department else False,
            'semester_id': semester.id if semester else '',
            'semester_number': semester.semester_number if semester else _parse_semester(o.semester),
            'semester_is_deleted': semester.is_deleted if semester else False,
            'division_id': division.id if division else '',
            'division_name': division.division_name if division else '',
            'division_is_deleted': division.is_deleted if division else False,
        }

    @staticmethod
    def _form_fields(form: models.FeedbackForm) -> Dict[str, Any]:
        return {
            'form_id': form.id,
            'form_name': form.title,
            'form_status': form.status.value if isinstance(form.status, models.FormStatus) else str(form.status),
            'form_is_deleted': form.is_deleted,
        }

    @staticmethod
    def _question_fields(q: models.FeedbackQuestion) -> Dict[str, Any]:
        return {
            'question_id': q.id,
            'question_text': q.text,
            'question_type': q.type,
            'question_category_id': q.category.id if q.category else q.category_id,
            'question_category_name': q.category.category_name if q.category else '',
            'question_batch': q.batch,
            'question_is_deleted': q.is_deleted,
            'faculty_id': q.faculty.id if q.faculty else q.faculty_id,
            'faculty_name': q.faculty.name if q.faculty else '',
            'faculty_email': q.faculty.email if q.faculty else '',
            'faculty_abbreviation': (q.faculty.abbreviation or '') if q.faculty else '',
            'subject_id': q.subject.id if q.subject else q.subject_id,
            'subject_name': q.subject.name if q.subject else '',
            'subject_abbreviation': q.subject.abbreviation if q.subject else '',
            'subject_code': q.subject.subject_code if q.subject else '',
            'subject_is_deleted': q.subject.is_deleted if q.subject else False,
        }


def _parse_semester(text: Optional[str]) -> int:
    try:
        return int(str(text or '0').strip())
    except ValueError:
        return 0


class FormAccessService:
    """Read a form through an access token and issue new tokens."""
    def __init__(self, session: Session, clock: Optional[Callable[[], datetime]] = None):
        self.session = session
        self.gate = AccessGate(session, clock=clock)
        self.form_repo = repositories.FormRepository(session)
        self.grant_repo = self.gate.grant_repo

    def get_form_by_token(self, token: str):
        """Return `(form, questions)` for a token that may still submit."""
        grant = self.gate.open_for_submission(token)
        return grant.form, self.form_repo.active_questions(grant.form.id)

    def issue_grants(self, form_id: str) -> Dict[str, Any]:
        """Create a grant for every respondent of the form that lacks one.

        The form's override roster is used when it has any live entries;
        otherwise the enrolled students of the allocated division. Existing
        grants are left untouched, so a consumed token is never reset.
        """
        form = self.form_repo.get(form_id)
        if not form or form.is_deleted:
            raise NotFoundError("Feedback form not found or is deleted.")
        overrides = self.form_repo.override_students(form.id)
        if overrides:
            kind = 'override'
            respondents = [(o.id, o.enrollment_number or '') for o in overrides]
        else:
            kind = 'student'
            division_id = form.subject_allocation.division_id if form.subject_allocation else None
            students = self.form_repo.division_students(division_id) if division_id else []
            respondents = [(s.id, s.enrollment_number) for s in students]
        if not respondents:
            raise NotFoundError("No active students found for this form.")

        existing = self.grant_repo.respondent_ids_for_form(form.id)
        new_grants = []
        for respondent_id, enrollment in respondents:
            if respondent_id in existing:
                continue
            new_grants.append(models.FormAccess(
                access_token=generate_access_token(form.id, respondent_id, enrollment),
                form_id=form.id,
                student_id=respondent_id if kind == 'student' else None,
                override_student_id=respondent_id if kind == 'override' else None,
            ))
        self.grant_repo.create_many(new_grants)
        grants_logger.info("Issued %d access grant(s) for form %s (%s)", len(new_grants), form.id, kind)
        return {
            'form_id': form.id,
            'respondent_kind': kind,
            'created': len(new_grants),
            'skipped': len(respondents) - len(new_grants),
        }


def generate_access_token(form_id: str, respondent_id: str, enrollment_number: str = '') -> str:
    """Return an unguessable base64url token bound to a form and respondent."""
    base = f"{form_id}-{respondent_id}-{enrollment_number}-{secrets.token_hex(16)}"
    digest = hmac.new(settings.TOKEN_SECRET.encode(), base.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b'=').decode('ascii')


class ReportService:
    """Read-only access to submission snapshots."""
    def __init__(self, session: Session):
        self.session = session
        self.form_repo = repositories.FormRepository(session)
        self.snapshot_repo = repositories.SnapshotRepository(session)

    def list_snapshots(self, form_id: str) -> List[Dict[str, Any]]:
        """Snapshots of a form with their decoded response values.

        Soft-deleted forms are still reportable; only unknown ids fail.
        """
        if self.form_repo.get(form_id) is None:
            raise NotFoundError("Feedback form not found.")
        out = []
        for snap in self.snapshot_repo.list_for_form(form_id):
            decoded = decode_response(snap.response_value, snap.question_type)
            out.append({
                'snapshot': snap,
                'response': {'kind': decoded.kind, 'value': decoded.value, 'score': decoded.score},
            })
        return out
