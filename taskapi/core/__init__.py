from taskapi.core.base import TaskApiBase
from taskapi.core.config import Config, SettingsLike
from taskapi.core.logging import get_logger, setup_logger
from taskapi.core.utils import as_bool, ifnone

__all__ = [
    "as_bool",
    "Config",
    "get_logger",
    "ifnone",
    "SettingsLike",
    "setup_logger",
    "TaskApiBase",
]
