import logging
from os import getenv

LOGGING_LEVEL = getenv('LOGGING_LEVEL', 'INFO')
LOGGING_LEVEL_ROOT = getenv('LOGGING_LEVEL_ROOT', 'WARNING')
LOGGING_COLORS = getenv('LOGGING_COLORS', '1') == '1'

# level -> (short name, ansi color)
LEVEL_STYLES = {
    logging.DEBUG: ('DEBUG', '36'),
    logging.INFO: ('INFO', '32'),
    logging.WARNING: ('WARN', '33'),
    logging.ERROR: ('ERROR', '31'),
    logging.CRITICAL: ('CRIT', '7;31'),
}


def paint(text: str, color: str) -> str:
    if not LOGGING_COLORS:
        return text
    return f'\033[{color}m{text}\033[0m'


for _level, (_name, _color) in LEVEL_STYLES.items():
    logging.addLevelName(_level, paint(_name.rjust(5), _color))


def app_logger(level=LOGGING_LEVEL):
    return {
        'handlers': ['console'],
        'level': level,
        'propagate': False,
    }


LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '[%(asctime)s] %(levelname)s %(name)32s:%(lineno)-3d '
                      + paint('>', '36') + ' %(message)s',
            'datefmt': "%Y/%m/%d %H:%M:%S"
        },
    },
    'handlers': {
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
            'formatter': 'verbose'
        },
    },
    'loggers': {
        'core': app_logger(),
        'bot': app_logger(),
        'spoilerbot': app_logger(),
        # one line per getUpdates poll
        'httpx': app_logger('WARNING'),
        # job added/removed for every cleanup timer
        'apscheduler': app_logger('WARNING'),
        '': app_logger(LOGGING_LEVEL_ROOT),
    }
}
