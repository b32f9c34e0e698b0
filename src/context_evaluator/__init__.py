from .app.main import evaluate, list_evaluators

__all__ = [
    "evaluate",
    "list_evaluators",
]

# stdlib logging defaults: attach NullHandler to prevent 'No handler' warnings
import logging
_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())
