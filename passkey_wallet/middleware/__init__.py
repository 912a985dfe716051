from .request_size_limit import RequestSizeLimitMiddleware
from .request_id import RequestIDMiddleware

__all__ = ["RequestSizeLimitMiddleware", "RequestIDMiddleware"]
