"""Configuration settings and constants for secure-shelf.

Everything lives in `config.settings`; this package re-exports it so that
`from config import DEFAULT_ITERATIONS` keeps working.
"""

from .settings import *  # noqa: F401,F403
from .settings import __all__  # noqa: F401
