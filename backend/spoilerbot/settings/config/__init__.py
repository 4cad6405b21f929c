from .BOT import *
from .BSKY import *
from .LOGGER import *
