"""
LiteLLM / HTTP client logging configuration

LiteLLM is only used here for token counting, but importing it still wires up
its own debug loggers. Those, together with httpcore's per-connection chatter
from the relay, are quieted so the application log stays readable.
"""

import logging
import os

NOISY_LOGGERS = [
    'litellm',
    'LiteLLM',
    'litellm.utils',
    'litellm.litellm_logging',
    'httpcore',
    'httpcore.connection',
    'httpcore.http11',
]


def configure_litellm_logging():
    """Configure LiteLLM to suppress debug output"""
    # Must be in the environment before litellm is first imported
    os.environ.setdefault("LITELLM_LOG", "ERROR")
    os.environ.setdefault("LITELLM_SUPPRESS_DEBUG_INFO", "true")

    import litellm

    litellm.set_verbose = False
    litellm.suppress_debug_info = True


def suppress_noisy_loggers(level: int = logging.ERROR):
    """Raise the level of third-party loggers without disabling them outright"""
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(level)


def configure_third_party_logging():
    configure_litellm_logging()
    suppress_noisy_loggers()
