"""
API Package Initialization

FastAPI surface for the inbox assistant. The application itself is built
by api.main.create_application.
"""
