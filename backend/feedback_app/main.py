"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the feedback backend.
Controllers are intentionally thin: they validate request shapes,
delegate to services, and return JSON responses. Service errors are
rendered by a single exception handler into the `{status, message}`
envelope.

Endpoints implemented:
- POST /student-responses/submit/{token}
- GET /student-responses/check-submission/{token}
- GET /feedback-forms/access/{token}
- POST /feedback-forms/{form_id}/access-grants   (admin)
- GET /feedback-forms/{form_id}/snapshots        (admin)
- GET /health
"""

from typing import Any, Dict
from fastapi import FastAPI, Body, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlmodel import Session
import json
import logging
import os
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services, schemas
from .auth import require_admin
from .errors import AppError
from .utils.rate_limit import InMemoryRateLimiter
from .config import settings

app = FastAPI(title="Academic Feedback API")
logger = logging.getLogger("feedback.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
_token_rate_limiter = InMemoryRateLimiter()

MAX_TOKEN_LENGTH = 512
TOKEN_PATH_PREFIXES = ("/student-responses", "/feedback-forms/access")

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def _log_request(event: str, payload: dict, exc_info: bool = False) -> None:
    line = json.dumps(payload, ensure_ascii=True)
    if exc_info:
        logger.exception("%s %s", event, line)
    else:
        logger.info("%s %s", event, line)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    traced = request.url.path.startswith(TOKEN_PATH_PREFIXES)
    context = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else "unknown",
    }
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        if traced:
            context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
            _log_request("request_failed", context, exc_info=True)
        raise
    response.headers["X-Request-ID"] = req_id
    if traced:
        context["status_code"] = response.status_code
        context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
        _log_request("request_done", context)
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render service errors; 5xx messages are already generic."""
    return JSONResponse(status_code=exc.status_code, content={"status": exc.status, "message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    status = "fail" if exc.status_code < 500 else "error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": status, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"status": "fail", "message": "Validation error", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=500, content={"status": "error", "message": "Something went very wrong!"})


def _enforce_token_rate_limit(request: Request) -> None:
    key = f"{request.client.host if request.client else 'unknown'}:{request.url.path.rsplit('/', 1)[0]}"
    allowed, retry_after = _token_rate_limiter.allow(
        key, settings.TOKEN_RATE_LIMIT_PER_MIN, settings.TOKEN_RATE_LIMIT_WINDOW_SECONDS
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


def _validate_token(token: str) -> str:
    if not token or token != token.strip() or len(token) > MAX_TOKEN_LENGTH:
        raise HTTPException(status_code=400, detail='invalid access token format')
    return token


@app.post('/student-responses/submit/{token}', response_model=schemas.SubmitResponsesOut)
def submit_responses(token: str, request: Request, responses: Dict[str, Any] = Body(...),
                     db: Session = Depends(get_session)):
    """Submit answers for the form behind a one-time access token.

    The body maps question ids to answer values. Unknown question ids
    are skipped, so `results` may be smaller than the number of keys.
    """
    _enforce_token_rate_limit(request)
    token = _validate_token(token)
    if not responses:
        raise HTTPException(status_code=400, detail='responses must contain at least one answer')
    created = services.SubmissionService(db).submit(token, responses)
    out = [schemas.StudentResponseOut.model_validate(r) for r in created]
    return schemas.SubmitResponsesOut(results=len(out), data=schemas.SubmittedResponses(responses=out))


@app.get('/student-responses/check-submission/{token}', response_model=schemas.SubmissionStatusOut)
def check_submission(token: str, request: Request, db: Session = Depends(get_session)):
    """Return whether the access token has already been used."""
    _enforce_token_rate_limit(request)
    token = _validate_token(token)
    status = services.SubmissionService(db).check_status(token)
    return schemas.SubmissionStatusOut(data=schemas.SubmissionStatus(is_submitted=status['is_submitted']))


@app.get('/feedback-forms/access/{token}', response_model=schemas.FormAccessOut)
def get_form_by_token(token: str, request: Request, db: Session = Depends(get_session)):
    """Return the form and its live questions for a usable access token."""
    _enforce_token_rate_limit(request)
    token = _validate_token(token)
    form, questions = services.FormAccessService(db).get_form_by_token(token)
    form_out = schemas.FormOut(
        id=form.id,
        title=form.title,
        status=form.status.value,
        start_date=form.start_date,
        end_date=form.end_date,
        questions=[schemas.QuestionOut.model_validate(q) for q in questions],
    )
    return schemas.FormAccessOut(data=schemas.FormData(form=form_out))


@app.post('/feedback-forms/{form_id}/access-grants', status_code=201, response_model=schemas.GrantSummaryOut)
def issue_access_grants(form_id: str, db: Session = Depends(get_session), admin: dict = Depends(require_admin)):
    """Create access tokens for every respondent of a form that lacks one."""
    summary = services.FormAccessService(db).issue_grants(form_id)
    logger.info("access grants issued by %s for form %s", admin.get('sub'), form_id)
    return schemas.GrantSummaryOut(data=schemas.GrantSummary(**summary))


@app.get('/feedback-forms/{form_id}/snapshots', response_model=schemas.SnapshotListOut)
def list_snapshots(form_id: str, db: Session = Depends(get_session), admin: dict = Depends(require_admin)):
    """Return the reporting snapshots of a form with decoded answers."""
    rows = services.ReportService(db).list_snapshots(form_id)
    out = []
    for row in rows:
        snap = row['snapshot']
        fields = {name: getattr(snap, name) for name in schemas.SnapshotOut.model_fields if name != 'decoded'}
        out.append(schemas.SnapshotOut(**fields, decoded=schemas.DecodedResponse(**row['response'])))
    return schemas.SnapshotListOut(results=len(out), data=schemas.SnapshotList(snapshots=out))


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
