"""
Constants package for RoomSync.

Constants are grouped into separate files by category. This __init__.py
re-exports the public constants (union of submodule __all__) so callers can
write `from roomsync.constants import LOGGER_NAME`.
"""

from collections import Counter

from . import api as _api
from . import app as _app
from . import config as _config
from . import logging as _logging
from . import matrix as _matrix
from . import messages as _messages

from .api import *  # noqa: F403
from .app import *  # noqa: F403
from .config import *  # noqa: F403
from .logging import *  # noqa: F403
from .matrix import *  # noqa: F403
from .messages import *  # noqa: F403


class DuplicateConstantError(NameError):
    """Raised when duplicate constants are found during import."""

    def __init__(self, duplicates):
        """
        Initialize the DuplicateConstantError with the given duplicate names.

        Parameters:
            duplicates (Iterable[str]): Names of constants exported by more than one submodule.
        """
        self.duplicates = tuple(duplicates)
        super().__init__(
            f"Duplicate constants found in roomsync.constants: {self.duplicates}"
        )


_modules = (_api, _app, _config, _logging, _matrix, _messages)
__all__ = tuple(name for m in _modules for name in getattr(m, "__all__", []))

# Verify that there are no duplicate constants being exported.
if len(__all__) != len(set(__all__)):
    counts = Counter(__all__)
    duplicates = [name for name, count in counts.items() if count > 1]
    raise DuplicateConstantError(sorted(duplicates))
