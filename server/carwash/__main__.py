"""Run the API with uvicorn: ``python -m carwash``."""

import uvicorn
from carwash.config import settings


def main():
    uvicorn.run(
        "carwash.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
