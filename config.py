import os
from dotenv import load_dotenv

# Загрузка переменных окружения из .env файла
load_dotenv()

# Настройки базы данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///planning.db")

# Debounce window of the change batcher, in seconds
BATCH_DEBOUNCE_SECONDS = float(os.getenv("BATCH_DEBOUNCE_SECONDS", "2.0"))

# Hours per worked day when no calendar applies
DEFAULT_HOURS_PER_DAY = float(os.getenv("DEFAULT_HOURS_PER_DAY", "8"))

# Upper bound of the hours-based end date search
HOURS_SEARCH_LIMIT_DAYS = int(os.getenv("HOURS_SEARCH_LIMIT_DAYS", "365"))

# Resize handles snap only past this distance (half a day)
RESIZE_SNAP_THRESHOLD_HOURS = float(os.getenv("RESIZE_SNAP_THRESHOLD_HOURS", "12"))

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "planning.log")
