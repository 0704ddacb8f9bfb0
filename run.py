
import sys

from dotenv import load_dotenv
load_dotenv()
from loguru import logger
from pollster.main import app

if __name__ == "__main__":
    import uvicorn
    from pollster.db import settings
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
