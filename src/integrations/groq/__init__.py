from .client import EnhancedGroqClient
from .model_manager import ModelManager

__all__ = [
    'EnhancedGroqClient',
    'ModelManager'
]
