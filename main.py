from fastapi import FastAPI

from app import create_app
from app.core.config import get_settings


def get_application() -> FastAPI:
    return create_app()


app = get_application()


@app.get("/healthz", tags=["health"])
def health_check():
    settings = get_settings()
    return {"status": "ok", "version": settings.app_version, "fallback_only": settings.use_fallback_only}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
