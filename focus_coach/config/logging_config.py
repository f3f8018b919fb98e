import logging
from typing import Optional

from focus_coach.config.settings import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logging(debug: Optional[bool] = None):
    """Configure logging for the application"""
    debug = settings.DEBUG if debug is None else debug

    # Create logs directory if it doesn't exist
    log_dir = settings.LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_dir / settings.LOG_FILE_NAME),
            logging.StreamHandler()  # Also log to console
        ]
    )
    
    logger = logging.getLogger(__name__)
    logger.debug("Logging initialized")
