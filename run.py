import logging
import sys
import uvicorn
from app.core.config import settings

if __name__ == "__main__":
    missing = settings.missing_credentials()
    if missing:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger("run").error(f"{', '.join(missing)} not found in .env file")
        sys.exit(1)

    # uvicorn handles SIGINT/SIGTERM and runs the app shutdown, which stops polling
    uvicorn.run(
        "app.main:app",
        host="localhost",
        port=settings.port,
        reload=settings.debug
    )
