"""
AI service - generation with retry/fallback, degraded replies and mode prompts.
"""

from .generation_client import GenerationClient, GenerationResult, TextGenerator
from .fallback_service import FallbackService, OVERLOADED_MESSAGE, UNAVAILABLE_MESSAGE
from .domain_content import CHAT_MODES, build_prompt, get_mode_context

__all__ = [
    'GenerationClient',
    'GenerationResult',
    'TextGenerator',
    'FallbackService',
    'OVERLOADED_MESSAGE',
    'UNAVAILABLE_MESSAGE',
    'CHAT_MODES',
    'build_prompt',
    'get_mode_context'
]
