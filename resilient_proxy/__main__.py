"""
Run the proxy with uvicorn.
"""
import sys

import uvicorn

from resilient_proxy.core.config import settings
from resilient_proxy.core.exceptions import ConfigurationError
from resilient_proxy.core.logger import get_logger
from resilient_proxy.main import create_app

logger = get_logger(__name__)


def main() -> None:
    logger.info("Starting up...")
    try:
        app = create_app()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


if __name__ == "__main__":
    main()
