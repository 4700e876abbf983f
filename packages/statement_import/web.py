"""HTTP surface (FastAPI): multipart parse, commit and profile CRUD.

Endpoints
---------
- ``POST /statements/parse``: multipart upload plus the profile fields (or a
  stored ``profile_id``); returns the staged rows.
- ``POST /statements/commit``: JSON body of reviewed rows; returns per-row
  outcomes.
- ``GET/POST /statement-formats`` and ``GET/PUT/DELETE
  /statement-formats/{profile_id}``: profile store CRUD.

All errors are returned as RFC 7807 problem details
(``application/problem+json``) with ``type``, ``title``, ``status``,
``detail`` and ``instance``; structural import errors add the offending
fields/columns/rows as extension members.

Handlers are plain ``def`` functions so FastAPI runs the synchronous parse and
commit work in its thread pool instead of on the event loop.
"""

from __future__ import annotations

from typing import Annotated, Any

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ImportSettings
from .errors import (
    BatchNotReady,
    FormatProfileNotFound,
    InvalidFormatProfile,
    MissingColumns,
    StatementImportError,
    UnreadableFile,
)
from .ledger import LedgerClient, SqlLedger
from .logging_setup import configure_logging, get_logger
from .models import FormatProfile
from .profiles import ProfileStore, open_profile_store
from .schemas import (
    CommitRequest,
    CommitResponse,
    ParseResponse,
    ProfileListResponse,
    ProfileResponse,
    profile_from_form,
)
from .workflows.import_flow import commit_statement, parse_statement

logger = get_logger("statement_import.web")

PROBLEM_JSON = "application/problem+json"

_STATUS_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    413: "Content Too Large",
    422: "Unprocessable Content",
    500: "Internal Server Error",
}


class ProblemError(Exception):
    """Raise from a handler to return a problem-details response."""

    def __init__(self, status_code: int, detail: str, **extensions: Any) -> None:
        self.status_code = status_code
        self.detail = detail
        self.extensions = extensions
        super().__init__(detail)


def _problem(
    request: Request, status_code: int, detail: str, **extensions: Any
) -> JSONResponse:
    body: dict[str, Any] = {
        "type": "about:blank",
        "title": _STATUS_TITLES.get(status_code, "Error"),
        "status": status_code,
        "detail": detail,
        "instance": str(request.url.path),
    }
    body.update(extensions)
    return JSONResponse(status_code=status_code, content=body, media_type=PROBLEM_JSON)


def _status_for(exc: StatementImportError) -> int:
    if isinstance(exc, FormatProfileNotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, UnreadableFile):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, (InvalidFormatProfile, MissingColumns, BatchNotReady)):
        return 422
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _extensions_for(exc: StatementImportError) -> dict[str, Any]:
    if isinstance(exc, InvalidFormatProfile):
        return {"missing_fields": list(exc.missing_fields)}
    if isinstance(exc, MissingColumns):
        return {"missing_columns": list(exc.columns)}
    if isinstance(exc, BatchNotReady):
        return {"row_numbers": list(exc.row_numbers)}
    return {}


def register_error_handlers(app: FastAPI) -> None:
    """Register problem-details handlers on ``app``."""

    @app.exception_handler(StatementImportError)
    async def _import_error(request: Request, exc: StatementImportError) -> JSONResponse:
        code = _status_for(exc)
        if code >= 500:
            logger.error("Import failed on %s: %s", request.url.path, exc)
        return _problem(request, code, str(exc), **_extensions_for(exc))

    @app.exception_handler(ProblemError)
    async def _problem_error(request: Request, exc: ProblemError) -> JSONResponse:
        return _problem(request, exc.status_code, exc.detail, **exc.extensions)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": list(e.get("loc", ())), "msg": str(e.get("msg", ""))} for e in exc.errors()
        ]
        return _problem(
            request, 422, "Request validation failed", errors=errors
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return _problem(request, exc.status_code, detail)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return _problem(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred"
        )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_settings(request: Request) -> ImportSettings:
    return request.app.state.settings


def get_store(request: Request) -> ProfileStore:
    return request.app.state.profile_store


def get_ledger(request: Request) -> LedgerClient:
    return request.app.state.ledger


def _optional_int(name: str, raw: str) -> int | None:
    s = raw.strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        raise ProblemError(
            status.HTTP_400_BAD_REQUEST, f"{name} must be an integer, got {raw!r}"
        ) from None


def _read_upload(file: UploadFile, limit: int) -> bytes:
    data = file.file.read(limit + 1)
    if len(data) > limit:
        raise ProblemError(
            413,
            f"File too large (max {limit} bytes)",
            max_bytes=limit,
        )
    return data


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()

_FormStr = Annotated[str, Form()]


@router.post("/statements/parse", response_model=ParseResponse, tags=["statements"])
def parse_upload(
    file: Annotated[UploadFile, File()],
    settings: Annotated[ImportSettings, Depends(get_settings)],
    store: Annotated[ProfileStore, Depends(get_store)],
    ledger: Annotated[LedgerClient, Depends(get_ledger)],
    account_id: _FormStr = "",
    profile_id: _FormStr = "",
    bank_name: _FormStr = "",
    date_col: _FormStr = "",
    desc_col: _FormStr = "",
    amount_format_type: _FormStr = "",
    debit_col: _FormStr = "",
    credit_col: _FormStr = "",
    amount_col: _FormStr = "",
    drcr_col: _FormStr = "",
    debit_texts: _FormStr = "",
    credit_texts: _FormStr = "",
    trans_id_col: _FormStr = "",
    date_format: _FormStr = "",
) -> ParseResponse:
    """Parse an uploaded statement and return the staged rows for review."""

    account = _optional_int("account_id", account_id)
    if profile_id.strip():
        profile = store.get(profile_id.strip())
    else:
        try:
            profile = profile_from_form(
                bank_name=bank_name,
                date_col=date_col,
                desc_col=desc_col,
                amount_format_type=amount_format_type,
                debit_col=debit_col,
                credit_col=credit_col,
                amount_col=amount_col,
                drcr_col=drcr_col,
                debit_texts=debit_texts,
                credit_texts=credit_texts,
                trans_id_col=trans_id_col,
                date_format=date_format,
            )
        except ValidationError as exc:
            raise ProblemError(
                422,
                "Invalid statement format fields",
                errors=[
                    {"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()
                ],
            ) from exc

    data = _read_upload(file, settings.max_upload_bytes)
    batch = parse_statement(
        data,
        profile,
        account_id=account,
        ledger=ledger if account is not None else None,
    )
    logger.info(
        "Parsed upload %r: %d row(s) via %s", file.filename, len(batch), profile.bank_name
    )
    return ParseResponse.from_batch(batch)


@router.post("/statements/commit", response_model=CommitResponse, tags=["statements"])
def commit_rows(
    body: CommitRequest,
    settings: Annotated[ImportSettings, Depends(get_settings)],
    ledger: Annotated[LedgerClient, Depends(get_ledger)],
) -> CommitResponse:
    """Commit reviewed rows; partial failure is reported per row, not as an error."""

    batch = body.to_batch()
    result = commit_statement(batch, ledger, concurrency=settings.commit_concurrency)
    return CommitResponse.from_result(result)


@router.get("/statement-formats", response_model=ProfileListResponse, tags=["formats"])
def list_formats(store: Annotated[ProfileStore, Depends(get_store)]) -> ProfileListResponse:
    profiles = list(store.list())
    return ProfileListResponse(count=len(profiles), profiles=profiles)


@router.post(
    "/statement-formats",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["formats"],
)
def create_format(
    profile: FormatProfile, store: Annotated[ProfileStore, Depends(get_store)]
) -> ProfileResponse:
    return ProfileResponse(profile=store.create(profile.without_id()))


@router.get(
    "/statement-formats/{profile_id}", response_model=ProfileResponse, tags=["formats"]
)
def get_format(
    profile_id: str, store: Annotated[ProfileStore, Depends(get_store)]
) -> ProfileResponse:
    return ProfileResponse(profile=store.get(profile_id))


@router.put(
    "/statement-formats/{profile_id}", response_model=ProfileResponse, tags=["formats"]
)
def update_format(
    profile_id: str,
    profile: FormatProfile,
    store: Annotated[ProfileStore, Depends(get_store)],
) -> ProfileResponse:
    return ProfileResponse(profile=store.update(profile_id, profile))


@router.delete(
    "/statement-formats/{profile_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["formats"],
)
def delete_format(profile_id: str, store: Annotated[ProfileStore, Depends(get_store)]) -> None:
    store.delete(profile_id)


def create_app(
    settings: ImportSettings | None = None,
    *,
    profile_store: ProfileStore | None = None,
    ledger: LedgerClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    ``settings`` default to :meth:`ImportSettings.from_env`; the profile store
    and ledger default to the ones those settings select. Tests inject their
    own collaborators.
    """

    if settings is None:
        load_dotenv(override=False)
        settings = ImportSettings.from_env()
    configure_logging()
    app = FastAPI(title="Statement import", version="1")
    app.state.settings = settings
    app.state.profile_store = profile_store or open_profile_store(
        settings.profile_store, database_url=settings.database_url
    )
    app.state.ledger = ledger or SqlLedger(database_url=settings.database_url)
    register_error_handlers(app)
    app.include_router(router)
    return app


__all__ = ["create_app", "register_error_handlers", "router"]
