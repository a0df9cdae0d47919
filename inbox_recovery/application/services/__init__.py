from .service_error_handler import ServiceErrorConfig, ServiceErrorHandler

__all__ = ["ServiceErrorConfig", "ServiceErrorHandler"]
