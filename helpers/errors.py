from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from settings import logger
from mutations.errors import EngineError, PatchValidationError
from mutations.patch_schemas import format_location


def register_exception_handlers(app: FastAPI):
    """Serialize engine failures as ``{error, category, entity, entity_id, details}``."""

    @app.exception_handler(EngineError)
    async def _engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log("Request failed", extra={
            "path": request.url.path,
            "category": exc.category,
            "entity": exc.entity,
            "entity_id": exc.entity_id,
        })
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        issues = [
            # drop the leading "body"/"path"/"query" segment
            {"path": format_location(tuple(error["loc"][1:])), "reason": error["msg"]}
            for error in exc.errors()
        ]
        error = PatchValidationError(issues, message="Request validation failed")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
