"""CLI script to seed a demo form and print usable access tokens.
Usage: python scripts/seed_demo.py [--students N] [--end-in-days D]
"""
import sys
import argparse
import pathlib
from datetime import datetime, timedelta, timezone
from typing import Optional
# Ensure `backend/` is on sys.path so `feedback_app` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session, select
from feedback_app.database import engine, create_db_and_tables
from feedback_app import models, services


def main(students: int = 3, end_in_days: Optional[int] = None):
    """Create one division with `students` enrolled students and an active form.

    Access grants are issued through `FormAccessService` and their tokens
    are printed so the submit endpoint can be tried by hand.
    """
    create_db_and_tables()
    with Session(engine) as session:
        year = models.AcademicYear(year_string="2025-26")
        dept = models.Department(name="Computer Engineering", abbreviation="CE")
        sem = models.Semester(department_id=dept.id, academic_year_id=year.id, semester_number=5)
        div = models.Division(semester_id=sem.id, division_name="A")
        faculty = models.Faculty(name="Demo Faculty", email="faculty@example.edu", abbreviation="DF")
        subject = models.Subject(name="Operating Systems", abbreviation="OS", subject_code="CE501")
        category = models.QuestionCategory(category_name="Teaching")
        alloc = models.SubjectAllocation(faculty_id=faculty.id, subject_id=subject.id, division_id=div.id,
                                         academic_year_id=year.id)
        end_date = datetime.now(timezone.utc) + timedelta(days=end_in_days) if end_in_days else None
        form = models.FeedbackForm(title="OS Feedback (demo)", status=models.FormStatus.ACTIVE,
                                   end_date=end_date, subject_allocation_id=alloc.id)
        rows = [year, dept, sem, div, faculty, subject, category, alloc, form]
        for order, (text, qtype) in enumerate([("Rate the course", "rating"), ("Any comments?", "text")], start=1):
            rows.append(models.FeedbackQuestion(form_id=form.id, category_id=category.id, faculty_id=faculty.id,
                                                subject_id=subject.id, text=text, type=qtype, display_order=order))
        for i in range(1, students + 1):
            rows.append(models.Student(name=f"Student {i}", email=f"student{i}@example.edu",
                                       enrollment_number=f"EN{i:03d}", academic_year_id=year.id,
                                       semester_id=sem.id, division_id=div.id))
        session.add_all(rows)
        session.commit()
        form_id = form.id

        summary = services.FormAccessService(session).issue_grants(form_id)
        print(f"Form {form_id}: issued {summary['created']} grant(s)")
        questions = session.exec(select(models.FeedbackQuestion).where(models.FeedbackQuestion.form_id == form_id)).all()
        print("Question ids: " + ", ".join(q.id for q in questions))
        grants = session.exec(select(models.FormAccess).where(models.FormAccess.form_id == form_id)).all()
        for g in grants:
            print(f"  token: {g.access_token}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--students', type=int, default=3, help='Number of enrolled students to create')
    parser.add_argument('--end-in-days', type=int, default=None, help='Close the form this many days from now')
    args = parser.parse_args()
    main(students=args.students, end_in_days=args.end_in_days)
