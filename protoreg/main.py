import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from protoreg.config import settings
from protoreg.routers import compilation, health, languages, modules
from protoreg.domain.errors import CompilationError, ConflictError, NotFoundError, ValidationError
from protoreg.application.event_handlers import register_event_handlers

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Protoreg API",
    description="Schema registry compilation service for Protocol Buffer modules",
    version=settings.VERSION,
)

# Register domain event handlers on startup
@app.on_event("startup")
async def startup_event():
    register_event_handlers()

@app.on_event("shutdown")
async def shutdown_event():
    from protoreg.dependencies import get_compiler
    if get_compiler.cache_info().currsize:
        get_compiler().close()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allows all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allows all methods
    allow_headers=["*"],  # Allows all headers
)


# Domain error handlers
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_error_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(CompilationError)
async def compilation_error_handler(request: Request, exc: CompilationError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "diagnostics": exc.diagnostics},
    )

# Include routers
app.include_router(health.router, tags=["Health"])  # Health check endpoints first
app.include_router(modules.router, tags=["Modules"])
app.include_router(compilation.router, tags=["Compilation"])
app.include_router(languages.router, tags=["Languages"])

@app.get("/")
async def root():
    return {"message": "Welcome to Protoreg API. See /docs for API documentation"}
