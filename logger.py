import logging
import sys

from config import LOG_FILE, LOG_LEVEL

handlers = [logging.StreamHandler(sys.stdout)]
if LOG_FILE:
    handlers.append(logging.FileHandler(LOG_FILE, encoding='utf-8'))

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=handlers
)

# Create logger
logger = logging.getLogger(__name__)

# Set logging level for the database layer
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
