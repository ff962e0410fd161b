import time
import uuid
from typing import Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logger import request_id_var

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Tag every log record of a request with its request id and time the request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"

        logger.trace(
            f"{request.method} {request.url.path} - Client: {client_ip} - "
            f"User-Agent: {request.headers.get('user-agent', 'unknown')}"
        )

        try:
            response: Response = await call_next(request)

            logger.trace(
                f"{request.method} {request.url.path} - Status: {response.status_code} - "
                f"Time: {time.time() - start_time:.3f}s"
            )
            response.headers[REQUEST_ID_HEADER] = request_id

            return response
        except Exception as e:
            # Request bodies are not logged, they carry credentials
            logger.error(
                f"{request.method} {request.url.path} - Error: {e} - "
                f"Time: {time.time() - start_time:.3f}s"
            )
            raise
        finally:
            request_id_var.reset(token)
