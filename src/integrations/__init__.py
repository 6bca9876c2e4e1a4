from .groq.client import EnhancedGroqClient
from .groq.model_manager import ModelManager
from .ollama.client import OllamaClient

__all__ = [
    'EnhancedGroqClient',
    'ModelManager',
    'OllamaClient',
]
