"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (grants,
forms, questions, responses, snapshots). Repositories return SQLModel
objects. Repositories used inside the submission transaction only add
and flush; committing is left to the calling service.
"""

from typing import Iterable, List, Optional, Set
from sqlalchemy import update
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select
from . import models


class AccessGrantRepository:
    """Lookups and state changes for `FormAccess` grants."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_token(self, token: str) -> Optional[models.FormAccess]:
        """Return the grant for `token` with form and respondent graphs loaded."""
        stmt = (
            select(models.FormAccess)
            .where(models.FormAccess.access_token == token)
            .options(
                selectinload(models.FormAccess.form)
                .selectinload(models.FeedbackForm.subject_allocation)
                .selectinload(models.SubjectAllocation.faculty),
                selectinload(models.FormAccess.form)
                .selectinload(models.FeedbackForm.subject_allocation)
                .selectinload(models.SubjectAllocation.subject),
                selectinload(models.FormAccess.student).selectinload(models.Student.academic_year),
                selectinload(models.FormAccess.student)
                .selectinload(models.Student.semester)
                .selectinload(models.Semester.department),
                selectinload(models.FormAccess.student).selectinload(models.Student.division),
                selectinload(models.FormAccess.override_student),
            )
        )
        return self.session.exec(stmt).first()

    def claim(self, grant_id: str) -> bool:
        """Flip `is_submitted` to True only if it is still False.

        Returns False when no row changed, i.e. another submission already
        claimed the grant. Runs inside the caller's transaction.
        """
        stmt = (
            update(models.FormAccess)
            .where(models.FormAccess.id == grant_id, models.FormAccess.is_submitted == False)  # noqa: E712
            .values(is_submitted=True)
        )
        result = self.session.exec(stmt)
        return result.rowcount == 1

    def respondent_ids_for_form(self, form_id: str) -> Set[str]:
        """Return student and override-student ids that already hold a grant."""
        stmt = select(models.FormAccess).where(models.FormAccess.form_id == form_id)
        ids = set()
        for grant in self.session.exec(stmt).all():
            ids.add(grant.student_id or grant.override_student_id)
        return ids

    def create_many(self, grants: Iterable[models.FormAccess]) -> List[models.FormAccess]:
        """Persist new grants in one commit."""
        grants = list(grants)
        for g in grants:
            self.session.add(g)
        self.session.commit()
        return grants


class FormRepository:
    """Read helpers for feedback forms and their rosters."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, form_id: str) -> Optional[models.FeedbackForm]:
        return self.session.get(models.FeedbackForm, form_id)

    def active_questions(self, form_id: str) -> List[models.FeedbackQuestion]:
        """Non-deleted questions of a form in display order."""
        stmt = (
            select(models.FeedbackQuestion)
            .where(models.FeedbackQuestion.form_id == form_id, models.FeedbackQuestion.is_deleted == False)  # noqa: E712
            .options(
                selectinload(models.FeedbackQuestion.category),
                selectinload(models.FeedbackQuestion.faculty),
                selectinload(models.FeedbackQuestion.subject),
            )
            .order_by(models.FeedbackQuestion.display_order, models.FeedbackQuestion.id)
        )
        return self.session.exec(stmt).all()

    def override_students(self, form_id: str) -> List[models.OverrideStudent]:
        stmt = select(models.OverrideStudent).where(
            models.OverrideStudent.feedback_form_id == form_id,
            models.OverrideStudent.is_deleted == False  # noqa: E712
        )
        return self.session.exec(stmt).all()

    def division_students(self, division_id: str) -> List[models.Student]:
        """Enrolled, non-deleted students of a non-deleted division."""
        stmt = (
            select(models.Student)
            .join(models.Division, models.Division.id == models.Student.division_id)
            .where(
                models.Student.division_id == division_id,
                models.Student.is_deleted == False,  # noqa: E712
                models.Division.is_deleted == False  # noqa: E712
            )
        )
        return self.session.exec(stmt).all()


class QuestionRepository:
    """Query helpers for `FeedbackQuestion` rows."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_submission(self, form_id: str, question_ids: List[str]) -> List[models.FeedbackQuestion]:
        """Return live questions of `form_id` among `question_ids`.

        Category, faculty and subject are loaded alongside so building
        snapshots does not cost a query per question.
        """
        if not question_ids:
            return []
        stmt = (
            select(models.FeedbackQuestion)
            .where(
                models.FeedbackQuestion.id.in_(question_ids),
                models.FeedbackQuestion.form_id == form_id,
                models.FeedbackQuestion.is_deleted == False  # noqa: E712
            )
            .options(
                selectinload(models.FeedbackQuestion.category),
                selectinload(models.FeedbackQuestion.faculty),
                selectinload(models.FeedbackQuestion.subject),
            )
        )
        return self.session.exec(stmt).all()


class DivisionRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_with_parents(self, division_id: Optional[str]) -> Optional[models.Division]:
        """Fetch a division with its semester, department and academic year."""
        if not division_id:
            return None
        stmt = (
            select(models.Division)
            .where(models.Division.id == division_id)
            .options(
                selectinload(models.Division.semester).selectinload(models.Semester.department),
                selectinload(models.Division.semester).selectinload(models.Semester.academic_year),
            )
        )
        return self.session.exec(stmt).first()


class SubmissionRepository:
    """Adds response and snapshot rows inside an open transaction."""
    def __init__(self, session: Session):
        self.session = session

    def add_response(self, response: models.StudentResponse) -> models.StudentResponse:
        self.session.add(response)
        self.session.flush()
        return response

    def add_snapshot(self, snapshot: models.FeedbackSnapshot) -> models.FeedbackSnapshot:
        self.session.add(snapshot)
        self.session.flush()
        return snapshot


class SnapshotRepository:
    """Read access to reporting snapshots."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_form(self, form_id: str) -> List[models.FeedbackSnapshot]:
        stmt = (
            select(models.FeedbackSnapshot)
            .where(models.FeedbackSnapshot.form_id == form_id, models.FeedbackSnapshot.is_deleted == False)  # noqa: E712
            .order_by(models.FeedbackSnapshot.submitted_at, models.FeedbackSnapshot.id)
        )
        return self.session.exec(stmt).all()
