import os
from enum import Enum
from typing import Union

__all__ = [
    "Color",
    "LOG_LEVELS",
    "verbose",
    "debug",
    "info",
    "warn",
    "error",
    "set_log_level",
    "get_log_level",
]

class Color(Enum):
    BLACK          = '\033[30m'
    RED            = '\033[31m'
    GREEN          = '\033[32m'
    YELLOW         = '\033[33m'
    BLUE           = '\033[34m'
    MAGENTA        = '\033[35m'
    CYAN           = '\033[36m'
    WHITE          = '\033[37m'
    COLOR_DEFAULT  = '\033[39m'
    BOLD           = '\033[1m'
    UNDERLINE      = '\033[4m'
    RESET          = '\033[0m'

    def __str__(self):
        return self.value

    def __call__(self, s):
        return str(self) + str(s) + str(Color.RESET)

LOG_LEVELS = {
    'verbose': 0,
    'debug':   1,
    'info':    2,
    'warn':    3,
    'error':   4,
}

def _initial_log_level() -> int:
    level = os.environ.get('ONNXLOWER_LOG_LEVEL', 'info').strip().lower()
    return LOG_LEVELS.get(level, LOG_LEVELS['info'])

log_level = _initial_log_level()

def set_log_level(level: Union[str, int]):
    global log_level
    if isinstance(level, str):
        log_level = LOG_LEVELS[level.lower()]
    else:
        log_level = int(level)

def get_log_level():
    return log_level

def verbose(*args):
    if log_level <= LOG_LEVELS['verbose']:
        print(Color.BLUE('VERBOSE:'), *args)
def debug(*args):
    if log_level <= LOG_LEVELS['debug']:
        print(*args)
def info(*args):
    if log_level <= LOG_LEVELS['info']:
        print(*args)
def warn(*args, prefix=True):
    if log_level <= LOG_LEVELS['warn']:
        if prefix and any(args):
            print(
                Color.YELLOW('WARNING:'),
                *args
            )
        else:
            print(*args)
def error(*args, prefix=True):
    if log_level <= LOG_LEVELS['error']:
        if prefix and any(args):
            print(
                Color.RED('ERROR:'),
                *args
            )
        else:
            print(*args)
