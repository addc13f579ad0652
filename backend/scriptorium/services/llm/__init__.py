"""
LLM Relay Package

Prompt templates plus the streaming pass-through to the upstream chat
completions API.
"""

from .exceptions import (
    RelayError,
    RelayConfigurationError,
    UpstreamUnavailableError,
    UpstreamStatusError,
    UpstreamStreamError,
)
from .frame_parser import FrameParser, FrameState, extract_delta
from .prompts import PromptManager, prompt_manager, PROMPT_TYPES, ANALYSIS_RESULT_FIELDS
from .relay import LLMRelay, RelayStream

__all__ = [
    'RelayError', 'RelayConfigurationError', 'UpstreamUnavailableError',
    'UpstreamStatusError', 'UpstreamStreamError',
    'FrameParser', 'FrameState', 'extract_delta',
    'PromptManager', 'prompt_manager', 'PROMPT_TYPES', 'ANALYSIS_RESULT_FIELDS',
    'LLMRelay', 'RelayStream',
]
