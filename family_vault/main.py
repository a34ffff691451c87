import logging
from contextlib import asynccontextmanager
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__, auth, documents, family, identity
from .config import settings
from .database import close_client, ensure_indexes, get_db
from .errors import AuthenticationError, ValidationError, VaultError
from .schemas import (
    DocumentUpdateBody,
    FamilyLinkBody,
    LoginBody,
    ProfileUpdateBody,
    RegisterBody,
    ShareBody,
    document_out,
    user_out,
)
from .storage import LocalFileStorage, get_storage

logger = logging.getLogger(__name__)

CurrentUser = Dict[str, Any]

LOG_FORMAT = "%(asctime)s %(levelname)s: %(name)s: %(message)s"


def _add_rotating_file(target: logging.Logger, path: Path, level: int):
    filename = str(path.resolve())
    if any(getattr(h, "baseFilename", None) == filename for h in target.handlers):
        return
    handler = TimedRotatingFileHandler(filename, when="midnight", backupCount=settings.log_retention_days, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    target.addHandler(handler)


def configure_logging():
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    package_logger = logging.getLogger("family_vault")
    package_logger.setLevel(settings.log_level.upper())
    if settings.log_dir is None:
        return
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    _add_rotating_file(package_logger, settings.log_dir / "application.log", logging.INFO)
    _add_rotating_file(package_logger, settings.log_dir / "error.log", logging.ERROR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(get_db())
    except PyMongoError as exc:
        logger.error("Could not create indexes: %s", exc)
    logger.info("Server ready on port %s", settings.port)
    yield
    close_client()


# ------------------------
# Errors
# ------------------------

def _error(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message}, headers=headers)


async def vault_error_handler(request: Request, exc: VaultError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return _error(exc.status_code, exc.message, headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "Invalid request"))
    return _error(400, ", ".join(messages) or "Invalid request")


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("%s on %s (500): %s", type(exc).__name__, request.url.path, exc, exc_info=exc)
    return _error(500, "Server Error")


# ------------------------
# Auth
# ------------------------
auth_router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(token: str, user: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": True, "token": token, "user": user_out(user)}


@auth_router.post("/register", status_code=201)
def register(body: RegisterBody, db: Database = Depends(get_db)):
    token, user = auth.register(db, body.name, body.email, body.password, body.national_id)
    return _token_response(token, user)


@auth_router.post("/login")
def login(body: LoginBody, db: Database = Depends(get_db)):
    token, user = auth.authenticate(db, body.email, body.password)
    return _token_response(token, user)


@auth_router.post("/token")
def issue_token(form_data: OAuth2PasswordRequestForm = Depends(), db: Database = Depends(get_db)):
    """OAuth2 password flow for the interactive docs; the username field carries the email."""
    token, _ = auth.authenticate(db, form_data.username, form_data.password)
    return {"access_token": token, "token_type": "bearer"}


# ------------------------
# Documents
# ------------------------
documents_router = APIRouter(prefix="/documents", tags=["documents"])


def _positive_int(value: Optional[str], default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@documents_router.get("")
def list_documents(
    shared: Optional[str] = None,
    owned: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    user: CurrentUser = Depends(auth.get_current_user),
    db: Database = Depends(get_db),
):
    show_shared = shared == "true"
    show_owned = owned == "true"
    if show_shared and show_owned:
        scope = "all"
    elif show_shared:
        scope = "shared"
    else:
        scope = "owned"

    page_number = _positive_int(page, 1)
    page_size = _positive_int(limit, 10)
    items, total = documents.list_documents(
        db,
        user,
        scope=scope,
        page=page_number,
        page_size=page_size,
        sort_field=sort_by or documents.DEFAULT_SORT,
        sort_dir="asc" if sort_order == "asc" else "desc",
    )
    skip = (page_number - 1) * page_size
    return {
        "success": True,
        "count": len(items),
        "total": total,
        "pagination": {
            "currentPage": page_number,
            "limit": page_size,
            "next": page_number + 1 if skip + page_size < total else None,
            "prev": page_number - 1 if page_number > 1 else None,
        },
        "data": [document_out(d) for d in items],
    }


@documents_router.post("", status_code=201)
def upload_document(
    document: Optional[UploadFile] = File(None),
    document_type: Optional[str] = Form(None, alias="documentType"),
    description: Optional[str] = Form(None),
    user: CurrentUser = Depends(auth.get_current_user),
    db: Database = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    if document is None:
        logger.warning("Document upload failed: no file received for user %s", user["_id"])
        raise ValidationError("No file uploaded")
    stored = storage.save(document.file, document.filename, document.content_type)
    record = documents.upload(db, storage, user, stored, document_type, description)
    return {"success": True, "data": document_out(record)}


@documents_router.get("/{doc_id}")
def get_document(doc_id: str, user: CurrentUser = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "data": document_out(documents.get_document(db, user, doc_id))}


@documents_router.get("/{doc_id}/download")
def download_document(
    doc_id: str,
    user: CurrentUser = Depends(auth.get_current_user),
    db: Database = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    record = documents.open_download(db, storage, user, doc_id)
    return FileResponse(record["file_path"], media_type=record["mime_type"], filename=record["file_name"])


@documents_router.put("/{doc_id}")
def update_document(
    doc_id: str,
    body: DocumentUpdateBody,
    user: CurrentUser = Depends(auth.get_current_user),
    db: Database = Depends(get_db),
):
    updated = documents.update_document(db, user, doc_id, body.changes())
    return {"success": True, "data": document_out(updated)}


@documents_router.delete("/{doc_id}")
def delete_document(
    doc_id: str,
    user: CurrentUser = Depends(auth.get_current_user),
    db: Database = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    documents.delete_document(db, storage, user, doc_id)
    return {"success": True, "message": "Document deleted successfully", "data": {}}


@documents_router.post("/{doc_id}/share")
def share_document(
    doc_id: str,
    body: ShareBody,
    user: CurrentUser = Depends(auth.get_current_user),
    db: Database = Depends(get_db),
):
    updated = documents.share_document(db, user, doc_id, body.family_member_ids)
    return {"success": True, "data": document_out(updated)}


# ------------------------
# Users & family
# ------------------------
users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.get("/me")
def get_me(user: CurrentUser = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "data": user_out(identity.get_profile(db, user))}


@users_router.put("/me")
def update_me(body: ProfileUpdateBody, user: CurrentUser = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "data": user_out(identity.update_profile(db, user, body.changes()))}


@users_router.post("/me/family")
def add_family_member(body: FamilyLinkBody, user: CurrentUser = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    updated = family.link_family_member(db, user, body.identifier, body.identifier_type)
    return {"success": True, "message": "Family member linked successfully", "data": user_out(updated)}


@users_router.delete("/me/family/{member_id}")
def remove_family_member(member_id: str, user: CurrentUser = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    updated = family.unlink_family_member(db, user, member_id)
    return {"success": True, "message": "Family member unlinked successfully", "data": user_out(updated)}


@users_router.get("/{user_id}")
def get_user(user_id: str, user: CurrentUser = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "data": user_out(identity.get_user(db, user, user_id))}


# ------------------------
# Health
# ------------------------
health_router = APIRouter(tags=["health"])


@health_router.get("/")
def read_root():
    return {"service": "Family Vault API", "status": "ok", "version": __version__}


@health_router.get("/health")
def health(db: Database = Depends(get_db)):
    try:
        db.command("ping")
    except PyMongoError as exc:
        logger.error("Database ping failed: %s", exc)
        return JSONResponse(status_code=503, content={"success": False, "database": "unavailable"})
    return {"success": True, "database": "connected", "collections": sorted(db.list_collection_names())}


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Family Vault API", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(VaultError, vault_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    api = APIRouter(prefix="/api")
    api.include_router(auth_router)
    api.include_router(documents_router)
    api.include_router(users_router)
    app.include_router(api)
    app.include_router(health_router)
    return app


app = create_app()
