"""
GenBI Adaptors.

Client for the external AI service and its typed contract.
"""

from genbi.adaptors.ai_service import AIServiceAdaptor

__all__ = ["AIServiceAdaptor"]
