"""
HTTP trigger source for the guardian notifier.

Exposes POST /sendNotification, the one-shot entry point the MediBox
firmware calls, as a FastAPI app built by create_app().
"""

from api.main import create_app

__all__ = ["create_app"]
