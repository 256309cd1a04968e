import uvicorn

from app.main import app
from app.platform.config import settings


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=5000, reload=False, log_level="debug" if settings.DEBUG else "info")
