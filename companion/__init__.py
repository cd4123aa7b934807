from .config import ServiceConfig
from .service import CompanionService

__version__ = "0.1.0"

__all__ = [
    "CompanionService",
    "ServiceConfig",
    "__version__",
]
