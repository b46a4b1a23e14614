import warnings

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from feedback_app import models
from feedback_app.auth import decode_token, issue_token
from feedback_app.config import settings
from feedback_app.database import engine
from feedback_app.main import app
from conftest import add_override_grant, add_question

client = TestClient(app)

ADMIN = {'Authorization': f"Bearer {issue_token('admin-1', 'ADMIN')}"}


def _grants(form_id):
    with Session(engine) as s:
        return s.exec(select(models.FormAccess).where(models.FormAccess.form_id == form_id)).all()


def _add_student(session, world, name, enrollment, is_deleted=False):
    s = models.Student(name=name, email=f"{enrollment.lower()}@college.edu", enrollment_number=enrollment,
                       academic_year_id=world.year_id, semester_id=world.semester_id,
                       division_id=world.division_id, is_deleted=is_deleted)
    session.add(s)
    session.commit()
    return s.id


def test_form_by_token_lists_live_questions(world, session):
    add_question(session, world, 'q-hidden', is_deleted=True)
    r = client.get(f'/feedback-forms/access/{world.token}')
    assert r.status_code == 200
    form = r.json()['data']['form']
    assert form['id'] == world.form_id
    assert form['status'] == 'ACTIVE'
    assert [q['id'] for q in form['questions']] == ['q1', 'q2']
    assert form['questions'][0]['displayOrder'] == 1


def test_form_by_token_after_submission_is_conflict(world):
    client.post(f'/student-responses/submit/{world.token}', json={'q1': 5})
    r = client.get(f'/feedback-forms/access/{world.token}')
    assert r.status_code == 409


def test_issue_grants_for_division_students(world, session):
    second = _add_student(session, world, 'Neha Shah', 'EN002')
    _add_student(session, world, 'Gone Student', 'EN003', is_deleted=True)

    r = client.post(f'/feedback-forms/{world.form_id}/access-grants', headers=ADMIN)
    assert r.status_code == 201
    assert r.json()['data'] == {'formId': world.form_id, 'respondentKind': 'student', 'created': 1, 'skipped': 1}

    grants = _grants(world.form_id)
    assert len(grants) == 2
    new = next(g for g in grants if g.student_id == second)
    assert new.is_submitted is False
    assert len(new.access_token) >= 40
    assert new.access_token != world.token

    # re-issuing never creates duplicates
    again = client.post(f'/feedback-forms/{world.form_id}/access-grants', headers=ADMIN)
    assert again.json()['data']['created'] == 0


def test_issue_grants_never_resets_consumed_token(world):
    client.post(f'/student-responses/submit/{world.token}', json={'q1': 5})
    client.post(f'/feedback-forms/{world.form_id}/access-grants', headers=ADMIN)
    assert client.get(f'/student-responses/check-submission/{world.token}').json()['data']['isSubmitted'] is True


def test_issue_grants_prefers_override_roster(world, session):
    override_id = add_override_grant(session, world)
    second = models.OverrideStudent(feedback_form_id=world.form_id, name="Kiran Das", email="kiran@college.edu")
    session.add(second)
    session.commit()

    r = client.post(f'/feedback-forms/{world.form_id}/access-grants', headers=ADMIN)
    assert r.status_code == 201
    assert r.json()['data']['respondentKind'] == 'override'
    assert r.json()['data']['created'] == 1
    override_grants = [g for g in _grants(world.form_id) if g.override_student_id]
    assert {g.override_student_id for g in override_grants} == {override_id, second.id}


def test_issue_grants_requires_admin(world):
    assert client.post(f'/feedback-forms/{world.form_id}/access-grants').status_code in (401, 403)
    bad = {'Authorization': 'Bearer invalid.token.here'}
    assert client.post(f'/feedback-forms/{world.form_id}/access-grants', headers=bad).status_code == 401
    student = {'Authorization': f"Bearer {issue_token('s-1', 'STUDENT')}"}
    assert client.post(f'/feedback-forms/{world.form_id}/access-grants', headers=student).status_code == 403


def test_issue_grants_unknown_or_deleted_form(world, session):
    assert client.post('/feedback-forms/nope/access-grants', headers=ADMIN).status_code == 404
    form = session.get(models.FeedbackForm, world.form_id)
    form.is_deleted = True
    session.add(form)
    session.commit()
    assert client.post(f'/feedback-forms/{world.form_id}/access-grants', headers=ADMIN).status_code == 404


def test_snapshot_report_decodes_values(world):
    client.post(f'/student-responses/submit/{world.token}', json={'q1': '5', 'q2': 'Great course'})
    r = client.get(f'/feedback-forms/{world.form_id}/snapshots', headers=ADMIN)
    assert r.status_code == 200
    body = r.json()
    assert body['results'] == 2
    by_question = {s['questionId']: s for s in body['data']['snapshots']}
    assert by_question['q1']['decoded'] == {'kind': 'rating', 'value': '5', 'score': 5.0}
    assert by_question['q2']['decoded']['kind'] == 'text'
    assert by_question['q2']['decoded']['value'] == 'Great course'
    assert by_question['q1']['divisionName'] == 'A'
    assert by_question['q1']['isOverrideStudent'] is False


def test_snapshots_survive_source_deletion(world, session):
    client.post(f'/student-responses/submit/{world.token}', json={'q1': 4})
    form = session.get(models.FeedbackForm, world.form_id)
    form.is_deleted = True
    form.title = 'Renamed'
    session.add(form)
    session.commit()
    r = client.get(f'/feedback-forms/{world.form_id}/snapshots', headers=ADMIN)
    assert r.status_code == 200
    assert r.json()['data']['snapshots'][0]['formName'] == 'OS Feedback'
    assert client.get('/feedback-forms/unknown/snapshots', headers=ADMIN).status_code == 404


def test_default_secret_is_long_enough_for_hs256():
    assert len(settings.JWT_SECRET.encode()) >= 32
    assert len(settings.TOKEN_SECRET.encode()) >= 32
    with warnings.catch_warnings():
        warnings.simplefilter('error')
        claims = decode_token(issue_token('admin-1', 'ADMIN'))
    assert claims['role'] == 'ADMIN'
