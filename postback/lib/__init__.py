from postback.lib.exceptions import ConfigurationError, DispatchError, PostbackError
from postback.lib.hooks import HookRegistry

__all__ = [
    "ConfigurationError",
    "DispatchError",
    "PostbackError",
    "HookRegistry",
]
