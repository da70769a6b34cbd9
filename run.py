import uvicorn
from protoreg.config import settings

if __name__ == "__main__":
    # Start the API server
    print(f"Starting API server on {settings.API_HOST}:{settings.API_PORT} (codegen {settings.CODEGEN_VERSION})...")
    uvicorn.run(
        "protoreg.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD
    )
