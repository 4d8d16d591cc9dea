import json
from contextlib import asynccontextmanager

from pydantic import ValidationError

from .chat_models import ChatCompletionRequest
from .errors import BridgeError, RequestValidationError
from .service import BridgeService


def create_bridge_app(service: BridgeService, *, include_docs: bool = True):
    """Build the OpenAI-compatible FastAPI app around ``service``."""

    try:
        from fastapi import APIRouter, FastAPI, Request
        from fastapi.exceptions import RequestValidationError as FastAPIValidationError
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse, StreamingResponse
    except ModuleNotFoundError as exc:  # pragma: no cover - optional extra
        raise RuntimeError("FastAPI is required for the HTTP bridge. Install opencode-bridge[server].") from exc

    docs_url = "/docs" if include_docs else None
    openapi_url = "/openapi.json" if include_docs else None

    @asynccontextmanager
    async def _lifespan(_app: FastAPI):
        await service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(
        title="OpenCode OpenAI Bridge",
        description=service.config.service_name,
        docs_url=docs_url,
        openapi_url=openapi_url,
        lifespan=_lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BridgeError)
    async def _handle_bridge_error(_request: Request, exc: BridgeError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(FastAPIValidationError)
    async def _handle_validation_error(_request: Request, exc: FastAPIValidationError):
        problem = RequestValidationError(json.dumps(exc.errors(), ensure_ascii=False, default=str))
        return JSONResponse(status_code=problem.status_code, content=problem.to_payload())

    async def _load_chat_request(request: Request) -> ChatCompletionRequest:
        try:
            payload = await request.json()
        except Exception as exc:
            raise RequestValidationError("Request body must be valid JSON") from exc
        try:
            return ChatCompletionRequest.model_validate(payload)
        except ValidationError as exc:
            errors = json.dumps(exc.errors(include_url=False), ensure_ascii=False, default=str)
            raise RequestValidationError(errors) from exc

    router = APIRouter(prefix="/v1")

    @router.post("/chat/completions")
    async def chat_completions(request: Request):
        chat_request = await _load_chat_request(request)
        if chat_request.stream:
            frames = service.stream(chat_request, is_disconnected=request.is_disconnected)
            return StreamingResponse(
                frames,
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            )
        response = await service.complete(chat_request)
        return JSONResponse(content=response.model_dump(exclude_none=True))

    @router.get("/models")
    async def list_models():
        models = await service.list_models()
        return JSONResponse(content=models.model_dump())

    @router.get("/health")
    async def health():
        return JSONResponse(content=service.health().model_dump())

    @app.get("/health")
    async def root_health():
        return JSONResponse(content=service.health().model_dump())

    app.include_router(router)
    return app


__all__ = ["create_bridge_app"]
