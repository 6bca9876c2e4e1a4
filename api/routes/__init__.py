"""
API Routes Package
"""

from api.routes import messages
from api.routes import policies

__all__ = ["messages", "policies"]
