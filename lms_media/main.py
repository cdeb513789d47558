from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lms_media.config import Settings, get_settings
from lms_media.errors import IssuerError, ObjectNotFound
from lms_media.identity import IdentityVerifier, SupabaseIdentityVerifier
from lms_media.issuer import SignedURLIssuer, utc_now
from lms_media.logging_config import configure_logging
from lms_media.models import (
    HealthResponse,
    MediaInfo,
    SignedURLResult,
    SignPayload,
    SignResponse,
)
from lms_media.storage import LocalObjectStore, ObjectStore, build_object_store

_bearer = HTTPBearer(auto_error=False)


def bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str | None:
    return credentials.credentials if credentials else None


def build_verifier(settings: Settings) -> IdentityVerifier | None:
    if not settings.require_auth:
        return None
    return SupabaseIdentityVerifier(
        settings.supabase_url,
        settings.supabase_service_role_key,
        timeout=settings.identity_timeout_seconds,
    )


def to_sign_response(key: str, result: SignedURLResult) -> SignResponse:
    return SignResponse(
        url=result.url,
        signed_url=result.url,
        key=key,
        expires_in=result.expiry_seconds,
        issued_at=result.issued_at,
        expires_at=result.expires_at,
    )


def create_app(
    settings: Settings | None = None,
    *,
    store: ObjectStore | None = None,
    verifier: IdentityVerifier | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    store = store or build_object_store(settings)
    verifier = verifier or build_verifier(settings)
    issuer = SignedURLIssuer(
        store,
        verifier=verifier,
        require_auth=settings.require_auth,
        default_expiry=settings.default_expiry_seconds,
        max_expiry=settings.max_expiry_seconds,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if isinstance(store, LocalObjectStore):
            store.init()
        yield
        if isinstance(verifier, SupabaseIdentityVerifier):
            verifier.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.issuer = issuer
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    def error_response(
        status_code: int, message: str, code: str, details: str | None = None
    ) -> JSONResponse:
        content = {"error": message, "code": code}
        if details:
            content["details"] = details
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(IssuerError)
    async def issuer_exception_handler(_: Request, exc: IssuerError):
        # Server-side failures keep their cause in the logs only.
        details = exc.details if exc.status_code < 500 else None
        return error_response(exc.status_code, exc.message, exc.code, details)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        invalid_fields = []
        for error in exc.errors():
            field = ".".join(str(item) for item in error["loc"] if item not in ("body", "query"))
            if field:
                invalid_fields.append(field)
        message = "invalid request parameters"
        if invalid_fields:
            message = f"invalid request parameters: {', '.join(invalid_fields)}"
        return error_response(400, message, "bad_request")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        code_map = {
            400: "bad_request",
            401: "unauthorized",
            403: "forbidden",
            404: "not_found",
            405: "method_not_allowed",
            410: "expired",
        }
        return error_response(exc.status_code, message, code_map.get(exc.status_code, "error"))

    @app.get("/")
    def root() -> dict:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="ok", environment=settings.app_env, timestamp=utc_now())

    @app.get("/v1/media/sign", response_model=SignResponse)
    @app.get("/api/r2-sign", response_model=SignResponse, include_in_schema=False)
    @app.get("/api/sign-download", response_model=SignResponse, include_in_schema=False)
    def sign_media_query(
        key: str | None = Query(None),
        expiry: int | None = Query(None),
        filename: str | None = Query(None),
        token: str | None = Depends(bearer_token),
    ):
        result = issuer.issue(key, token, expiry, filename=filename)
        return to_sign_response(key.strip(), result)

    @app.post("/v1/media/sign", response_model=SignResponse)
    @app.post("/api/r2-sign", response_model=SignResponse, include_in_schema=False)
    @app.post("/api/sign-download", response_model=SignResponse, include_in_schema=False)
    def sign_media_body(
        payload: SignPayload | None = None,
        token: str | None = Depends(bearer_token),
    ):
        payload = payload or SignPayload()
        result = issuer.issue(
            payload.key,
            token,
            payload.resolved_expiry(),
            filename=payload.filename,
        )
        return to_sign_response(payload.key.strip(), result)

    @app.get("/v1/media/info", response_model=MediaInfo)
    def media_info(
        key: str | None = Query(None),
        token: str | None = Depends(bearer_token),
    ):
        return issuer.describe(key, token)

    if isinstance(store, LocalObjectStore):

        @app.get("/v1/media/download")
        def download_media(
            key: str = Query(...),
            exp: int = Query(...),
            nonce: str = Query(...),
            sig: str = Query(...),
        ):
            now = int(datetime.now(timezone.utc).timestamp())
            if exp < now:
                raise HTTPException(status_code=410, detail="link expired")
            if not store.signer.verify(key=key, expires_at=exp, nonce=nonce, signature=sig):
                raise HTTPException(status_code=403, detail="invalid signature")

            try:
                info = store.stat(key)
            except ObjectNotFound as exc:
                raise HTTPException(status_code=404, detail="media not found") from exc

            path = store.path_for(key)
            return FileResponse(
                path=path,
                filename=path.name,
                media_type=info.content_type,
                content_disposition_type="inline",
            )

    return app


app = create_app()
