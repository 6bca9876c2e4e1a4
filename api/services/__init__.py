"""
API Services Package
"""

from api.services.message_service import MessageService, get_message_service, get_user_id

__all__ = ["MessageService", "get_message_service", "get_user_id"]
