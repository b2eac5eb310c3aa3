import uvicorn

from app.platform.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=3001,
        reload=settings.ENVIRONMENT == "local",
    )
