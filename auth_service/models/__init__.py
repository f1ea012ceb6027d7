# auth_service/models/__init__.py
# Importing the modules registers every table on Base.metadata.
from auth_service.models.user import User  # noqa: F401
from auth_service.models.account_provider import AccountProvider, Provider  # noqa: F401
from auth_service.models.refresh_token import RefreshToken  # noqa: F401

__all__ = ["User", "AccountProvider", "Provider", "RefreshToken"]
