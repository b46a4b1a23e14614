import os
import tempfile
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

# point the app at a throwaway database before anything imports it
_DB_DIR = Path(tempfile.mkdtemp(prefix="feedback-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_DIR / 'test.db'}")

import pytest
from sqlmodel import Session

from feedback_app import database, models
from feedback_app.main import _token_rate_limiter


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test empty tables and a fresh rate limiter."""
    database.drop_db_and_tables()
    database.create_db_and_tables()
    _token_rate_limiter.reset()
    yield


@pytest.fixture
def session():
    with Session(database.engine) as s:
        yield s


def build_world(session: Session, status: models.FormStatus = models.FormStatus.ACTIVE,
                end_date: Optional[datetime] = None, token: str = "tok-abc") -> SimpleNamespace:
    """Create one department/semester/division with a form, two questions
    and an enrolled student holding an unused grant. Returns ids only."""
    year = models.AcademicYear(year_string="2025-26")
    dept = models.Department(name="Computer Engineering", abbreviation="CE")
    sem = models.Semester(department_id=dept.id, academic_year_id=year.id, semester_number=5)
    div = models.Division(semester_id=sem.id, division_name="A")
    faculty = models.Faculty(name="Dr. Meera Rao", email="meera.rao@college.edu", abbreviation="MR")
    subject = models.Subject(name="Operating Systems", abbreviation="OS", subject_code="CE501")
    category = models.QuestionCategory(category_name="Teaching")
    alloc = models.SubjectAllocation(faculty_id=faculty.id, subject_id=subject.id, division_id=div.id,
                                     academic_year_id=year.id)
    form = models.FeedbackForm(title="OS Feedback", status=status, end_date=end_date,
                               subject_allocation_id=alloc.id)
    q1 = models.FeedbackQuestion(id="q1", form_id=form.id, category_id=category.id, faculty_id=faculty.id,
                                 subject_id=subject.id, text="Rate the course", type="rating", display_order=1)
    q2 = models.FeedbackQuestion(id="q2", form_id=form.id, category_id=category.id, faculty_id=faculty.id,
                                 subject_id=subject.id, text="Any comments?", type="text", display_order=2)
    student = models.Student(name="Asha Patil", email="asha@college.edu", enrollment_number="EN001",
                             academic_year_id=year.id, semester_id=sem.id, division_id=div.id)
    grant = models.FormAccess(access_token=token, form_id=form.id, student_id=student.id)
    session.add_all([year, dept, sem, div, faculty, subject, category, alloc, form, q1, q2, student, grant])
    session.commit()
    return SimpleNamespace(
        year_id=year.id, department_id=dept.id, semester_id=sem.id, division_id=div.id,
        faculty_id=faculty.id, subject_id=subject.id, category_id=category.id, allocation_id=alloc.id,
        form_id=form.id, student_id=student.id, grant_id=grant.id, token=token,
    )


def add_question(session: Session, world: SimpleNamespace, question_id: str, form_id: Optional[str] = None,
                 is_deleted: bool = False, qtype: str = "rating") -> str:
    q = models.FeedbackQuestion(id=question_id, form_id=form_id or world.form_id, category_id=world.category_id,
                                faculty_id=world.faculty_id, subject_id=world.subject_id,
                                text=f"Question {question_id}", type=qtype, is_deleted=is_deleted)
    session.add(q)
    session.commit()
    return q.id


def add_override_grant(session: Session, world: SimpleNamespace, token: str = "tok-override",
                       department: str = "Mechanical", semester: str = "3") -> str:
    """Add an override student on the world's form and a grant for them."""
    o = models.OverrideStudent(feedback_form_id=world.form_id, name="Ravi Kumar", email="ravi@college.edu",
                               enrollment_number="OV-17", department=department, semester=semester)
    grant = models.FormAccess(access_token=token, form_id=world.form_id, override_student_id=o.id)
    session.add_all([o, grant])
    session.commit()
    return o.id


@pytest.fixture
def world(session):
    return build_world(session)
