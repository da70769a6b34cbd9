"""
protoreg-api Application Package

Directory Structure:
├── routers/           # FastAPI route handlers
├── schemas/           # Pydantic models for API requests/responses
│   └── api_schemas.py # HTTP request/response structures
├── domain/            # Entities, errors, events, ports, language catalogue
├── application/       # Domain event handlers
├── services/
│   └── codegen/       # Compilation orchestrator, sandbox, cache, registry
├── storage/           # Version and artifact storage
│   ├── filesystem.py  # Local filesystem storage
│   ├── memory.py      # In-memory storage
│   └── s3.py          # S3 artifact storage
└── config.py          # Application configuration

Compilation Backends:
1. **v2** (services.codegen.orchestrator): sandboxed, cached, concurrent fan-out
2. **v1** (services.codegen.legacy): host protoc for Go and Python only

CODEGEN_VERSION selects the backend once, when the compiler is built.
"""
