import threading

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from feedback_app import models, repositories, services
from feedback_app.database import engine
from feedback_app.errors import AlreadySubmittedError, InternalError
from feedback_app.main import app
from conftest import add_question

client = TestClient(app)


def _count(model):
    with Session(engine) as s:
        return len(s.exec(select(model)).all())


def _is_submitted(grant_id):
    with Session(engine) as s:
        return s.get(models.FormAccess, grant_id).is_submitted


def test_storage_fault_mid_submission_rolls_back_everything(world, session, monkeypatch):
    add_question(session, world, 'q3')
    original = repositories.SubmissionRepository.add_snapshot
    calls = {'n': 0}

    def flaky_add_snapshot(self, snapshot):
        calls['n'] += 1
        if calls['n'] == 2:
            raise OperationalError('INSERT INTO feedbacksnapshot', {}, Exception('disk I/O error'))
        return original(self, snapshot)

    monkeypatch.setattr(repositories.SubmissionRepository, 'add_snapshot', flaky_add_snapshot)
    with Session(engine) as s:
        with pytest.raises(InternalError):
            services.SubmissionService(s).submit(world.token, {'q1': 5, 'q2': 'good', 'q3': 4})

    assert calls['n'] == 2
    assert _count(models.StudentResponse) == 0
    assert _count(models.FeedbackSnapshot) == 0
    assert _is_submitted(world.grant_id) is False


def test_storage_fault_is_reported_as_generic_500(world, monkeypatch):
    def broken_add_response(self, response):
        raise OperationalError('INSERT INTO studentresponse', {}, Exception('connection reset'))

    monkeypatch.setattr(repositories.SubmissionRepository, 'add_response', broken_add_response)
    r = client.post(f'/student-responses/submit/{world.token}', json={'q1': 5})
    assert r.status_code == 500
    assert r.json() == {'status': 'error', 'message': 'Failed to submit feedback.'}
    assert _is_submitted(world.grant_id) is False

    monkeypatch.undo()
    retry = client.post(f'/student-responses/submit/{world.token}', json={'q1': 5})
    assert retry.status_code == 200


def test_claim_flips_flag_only_once(world):
    with Session(engine) as s:
        repo = repositories.AccessGrantRepository(s)
        assert repo.claim(world.grant_id) is True
        assert repo.claim(world.grant_id) is False
        s.commit()
    assert _is_submitted(world.grant_id) is True


def test_concurrent_submissions_with_same_token(world):
    workers = 4
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def submit():
        barrier.wait()
        with Session(engine) as s:
            try:
                created = services.SubmissionService(s).submit(world.token, {'q1': 5, 'q2': 'fine'})
                result = ('ok', len(created))
            except AlreadySubmittedError:
                result = ('already', 0)
            except Exception as exc:
                result = ('error', repr(exc))
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=submit) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(outcomes) == [('already', 0)] * (workers - 1) + [('ok', 2)]
    assert _count(models.StudentResponse) == 2
    assert _count(models.FeedbackSnapshot) == 2
    assert _is_submitted(world.grant_id) is True
