# FILE: webforge/server.py

import logging

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from webforge.api import generate, internal, teams
from webforge.core.config import CORS_ORIGINS, LOG_LEVEL
from webforge.core.database import engine, init_models
from webforge.core.errors import PipelineError, ValidationError

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("webforge")

app = FastAPI(title="Webforge generation API")
api_router = APIRouter(prefix="/api")


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.raw or exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_http_detail())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies get the same {success, error, code} shape as pipeline errors
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{field}: {err.get('msg', 'invalid')}" if field else err.get("msg", "invalid"))
    error = ValidationError("; ".join(problems) or "Invalid request")
    return JSONResponse(status_code=error.status_code, content=error.to_http_detail())


# ================== ROOT ==================

@api_router.get("/")
async def api_root():
    return {"message": "Webforge generation API"}

# ================== FINAL ==================

app.include_router(api_router)
app.include_router(generate.router)
app.include_router(teams.router)
app.include_router(internal.router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup():
    await init_models()

@app.on_event("shutdown")
async def shutdown():
    await engine.dispose()
