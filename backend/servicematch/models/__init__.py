# Importing the package registers every model with Base.metadata (Alembic relies on it)
from servicematch.models.marketplace import Category, ServiceProvider, User
from servicematch.models.service import Service
from servicematch.models.service_request import ServiceRequest

__all__ = ["Category", "Service", "ServiceProvider", "ServiceRequest", "User"]
