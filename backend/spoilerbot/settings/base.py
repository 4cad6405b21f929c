import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from .config import *  # noqa: E402

BASE_DIR = str(Path(os.path.abspath(__file__)).parents[2])
SECRET_KEY = os.getenv('SECRET_KEY', 'spoilerbot')
DEBUG = os.getenv('DEBUG', '0') == '1'

INSTALLED_APPS = [
    'core.apps.CoreConfig',
    'bot.apps.BotConfig',
]

# no relational database, everything lives in redis
DATABASES = {}

TIME_ZONE = 'UTC'
USE_TZ = True
