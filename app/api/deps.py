"""
Shared API dependencies
"""
from app.services import integration_service
from app.services.queue_processor import ClientFactory


def get_client_factory() -> ClientFactory:
    """Builds platform clients from stored credentials; overridden in tests"""
    return integration_service.get_client_for_integration
