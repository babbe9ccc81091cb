"""
Trigger-phrase voice agent package.

Top-level names resolve lazily so pure modules like `src.trigger_agent.triggers`
import without dotenv or websockets installed.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.trigger_agent.bridge import SessionBridge
    from src.trigger_agent.config import Config, get_config
    from src.trigger_agent.session import TriggerSession

_EXPORTS = {
    "Config": "src.trigger_agent.config",
    "get_config": "src.trigger_agent.config",
    "TriggerSession": "src.trigger_agent.session",
    "SessionBridge": "src.trigger_agent.bridge",
}

__all__ = list(_EXPORTS)


def __getattr__(name: str) -> Any:
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(name)
    return getattr(import_module(module_name), name)
