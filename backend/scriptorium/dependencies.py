from .config import settings
from .database import get_db
from .services.context_assembler import ContextAssembler, context_assembler
from .services.llm import LLMRelay

__all__ = ["get_db", "get_relay", "get_assembler", "get_session_factory"]


def get_relay() -> LLMRelay:
    """Relay configured from settings; overridden in tests with a mock transport"""
    return LLMRelay.from_settings(settings)


def get_assembler() -> ContextAssembler:
    return context_assembler


def get_session_factory():
    """Session factory for work that outlives the request, such as persisting streamed output"""
    from .database import SessionLocal
    return SessionLocal
