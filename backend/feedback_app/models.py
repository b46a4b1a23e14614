"""SQLModel data models.

This module defines the application's database tables using SQLModel.
The academic structure (years, departments, semesters, divisions), the
feedback forms and their questions, the two kinds of respondents and the
submission records all live here.

`FeedbackSnapshot` is deliberately free of foreign keys and relationships:
it is a write-once copy of everything reporting needs, so that later edits
or deletions of the source rows never change historical reports.
"""

import uuid
from enum import Enum
from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field, Relationship


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# exactly one respondent column is set
ONE_RESPONDENT = "(student_id IS NULL) <> (override_student_id IS NULL)"


class FormStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class AcademicYear(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    year_string: str
    is_deleted: bool = False


class Department(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    abbreviation: str = ""
    is_deleted: bool = False


class Semester(SQLModel, table=True):
    """A numbered semester of a department within an academic year."""
    id: str = Field(default_factory=new_id, primary_key=True)
    department_id: str = Field(foreign_key='department.id', index=True)
    academic_year_id: str = Field(foreign_key='academicyear.id', index=True)
    semester_number: int
    is_deleted: bool = False
    department: Optional[Department] = Relationship()
    academic_year: Optional[AcademicYear] = Relationship()


class Division(SQLModel, table=True):
    """A class section inside a semester (e.g. division "A")."""
    id: str = Field(default_factory=new_id, primary_key=True)
    semester_id: str = Field(foreign_key='semester.id', index=True)
    division_name: str
    is_deleted: bool = False
    semester: Optional[Semester] = Relationship()


class Faculty(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    email: str
    abbreviation: Optional[str] = None
    is_deleted: bool = False


class Subject(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    abbreviation: str = ""
    subject_code: str = ""
    is_deleted: bool = False


class SubjectAllocation(SQLModel, table=True):
    """The faculty/subject/division tuple a feedback form evaluates."""
    id: str = Field(default_factory=new_id, primary_key=True)
    faculty_id: str = Field(foreign_key='faculty.id', index=True)
    subject_id: str = Field(foreign_key='subject.id', index=True)
    division_id: str = Field(foreign_key='division.id', index=True)
    academic_year_id: Optional[str] = Field(default=None, foreign_key='academicyear.id')
    lecture_type: str = "LECTURE"
    batch: str = "-"
    is_deleted: bool = False
    faculty: Optional[Faculty] = Relationship()
    subject: Optional[Subject] = Relationship()
    division: Optional[Division] = Relationship()


class FeedbackForm(SQLModel, table=True):
    """A feedback form distributed to students for one subject allocation.

    Only `ACTIVE` forms accept submissions, and only until `end_date`
    when one is set.
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    title: str
    status: FormStatus = Field(default=FormStatus.DRAFT, index=True)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    subject_allocation_id: Optional[str] = Field(default=None, foreign_key='subjectallocation.id')
    created_at: datetime = Field(default_factory=utcnow)
    is_deleted: bool = False
    subject_allocation: Optional[SubjectAllocation] = Relationship()
    questions: List['FeedbackQuestion'] = Relationship(back_populates='form')


class QuestionCategory(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    category_name: str
    is_deleted: bool = False


class FeedbackQuestion(SQLModel, table=True):
    """A single question of a form.

    `type` drives how the submitted value is interpreted (see
    `utils.response_values`), e.g. `rating` or `text`.
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    form_id: str = Field(foreign_key='feedbackform.id', index=True)
    category_id: str = Field(foreign_key='questioncategory.id')
    faculty_id: str = Field(foreign_key='faculty.id')
    subject_id: str = Field(foreign_key='subject.id')
    text: str
    type: str = "rating"
    batch: str = "None"
    display_order: int = 0
    is_deleted: bool = False
    form: Optional[FeedbackForm] = Relationship(back_populates='questions')
    category: Optional[QuestionCategory] = Relationship()
    faculty: Optional[Faculty] = Relationship()
    subject: Optional[Subject] = Relationship()


class Student(SQLModel, table=True):
    """An enrolled student, linked to the academic structure."""
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    email: str
    enrollment_number: str = Field(index=True)
    academic_year_id: Optional[str] = Field(default=None, foreign_key='academicyear.id')
    semester_id: Optional[str] = Field(default=None, foreign_key='semester.id')
    division_id: Optional[str] = Field(default=None, foreign_key='division.id', index=True)
    is_deleted: bool = False
    academic_year: Optional[AcademicYear] = Relationship()
    semester: Optional[Semester] = Relationship()
    division: Optional[Division] = Relationship()


class OverrideStudent(SQLModel, table=True):
    """A roster exception added to one form outside normal enrollment.

    `department` and `semester` are free text copied from the uploaded
    roster; there is no link to the academic structure tables.
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    feedback_form_id: str = Field(foreign_key='feedbackform.id', index=True)
    name: str
    email: str
    enrollment_number: Optional[str] = None
    department: Optional[str] = None
    semester: Optional[str] = None
    is_deleted: bool = False


class FormAccess(SQLModel, table=True):
    """One-time access grant for a respondent to submit one form.

    `is_submitted` only ever moves from False to True.
    """
    __table_args__ = (CheckConstraint(ONE_RESPONDENT, name='ck_formaccess_one_respondent'),)

    id: str = Field(default_factory=new_id, primary_key=True)
    access_token: str = Field(index=True, unique=True, nullable=False)
    form_id: str = Field(foreign_key='feedbackform.id', index=True)
    student_id: Optional[str] = Field(default=None, foreign_key='student.id')
    override_student_id: Optional[str] = Field(default=None, foreign_key='overridestudent.id')
    is_submitted: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    form: Optional[FeedbackForm] = Relationship()
    student: Optional[Student] = Relationship()
    override_student: Optional[OverrideStudent] = Relationship()


class StudentResponse(SQLModel, table=True):
    """A raw answer to one question from one submission."""
    __table_args__ = (CheckConstraint(ONE_RESPONDENT, name='ck_studentresponse_one_respondent'),)

    id: str = Field(default_factory=new_id, primary_key=True)
    student_id: Optional[str] = Field(default=None, foreign_key='student.id', index=True)
    override_student_id: Optional[str] = Field(default=None, foreign_key='overridestudent.id', index=True)
    feedback_form_id: str = Field(foreign_key='feedbackform.id', index=True)
    question_id: str = Field(foreign_key='feedbackquestion.id')
    response_value: str
    submitted_at: datetime
    is_deleted: bool = False


class FeedbackSnapshot(SQLModel, table=True):
    """Denormalized copy of a response and everything reports group by."""
    __table_args__ = (CheckConstraint(ONE_RESPONDENT, name='ck_feedbacksnapshot_one_respondent'),)

    id: str = Field(default_factory=new_id, primary_key=True)
    original_student_response_id: str = Field(index=True, unique=True)

    student_id: Optional[str] = None
    override_student_id: Optional[str] = None
    is_override_student: bool = False
    student_enrollment_number: str = ""
    student_name: str = ""
    student_email: str = ""

    form_id: str = Field(index=True)
    form_name: str
    form_status: str
    form_is_deleted: bool = False

    question_id: str
    question_text: str
    question_type: str
    question_category_id: str
    question_category_name: str
    question_batch: str
    question_is_deleted: bool = False

    faculty_id: str = Field(index=True)
    faculty_name: str
    faculty_email: str
    faculty_abbreviation: str = ""

    subject_id: str = Field(index=True)
    subject_name: str
    subject_abbreviation: str = ""
    subject_code: str = ""
    subject_is_deleted: bool = False

    academic_year_id: str = ""
    academic_year_string: str = ""
    academic_year_is_deleted: bool = False
    department_id: str = ""
    department_name: str = ""
    department_abbreviation: str = ""
    department_is_deleted: bool = False
    semester_id: str = ""
    semester_number: int = 0
    semester_is_deleted: bool = False
    division_id: str = Field(default="", index=True)
    division_name: str = ""
    division_is_deleted: bool = False

    response_value: str
    batch: str = "None"
    submitted_at: datetime
    is_deleted: bool = False
