# middleware/error_handler.py
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import logging
import traceback
from typing import Callable

from fitacademy.clients.backend import BackendError, BackendUnavailable
from fitacademy.messages import AR, describe_error

logger = logging.getLogger(__name__)

class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware for the FastAPI application.

    Upstream failures that a route did not handle keep the upstream status
    and carry the user-facing text in `arabic`.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        try:
            response = await call_next(request)
            return response

        except HTTPException as e:
            # Let FastAPI handle HTTP exceptions normally
            raise e

        except BackendError as e:
            logger.warning(f"Upstream error on {request.url}: {e.status_code} {str(e)}")
            return JSONResponse(
                status_code=e.status_code,
                content={
                    "error": e.payload.get("error") or "Upstream Error",
                    "message": describe_error(e),
                    "arabic": e.arabic or describe_error(e),
                    "path": str(request.url.path)
                }
            )

        except ValueError as e:
            # Handle validation errors
            logger.warning(f"Validation error on {request.url}: {str(e)}")
            return JSONResponse(
                status_code=400,
                content={
                    "error": "Validation Error",
                    "message": str(e),
                    "path": str(request.url.path)
                }
            )

        except (BackendUnavailable, ConnectionError) as e:
            # Upstream API, database or Redis unreachable
            logger.error(f"Connection error on {request.url}: {str(e)}")
            return JSONResponse(
                status_code=503,
                content={
                    "error": "Service Unavailable",
                    "message": "Upstream service unreachable",
                    "arabic": AR["unexpected"],
                    "path": str(request.url.path)
                }
            )

        except Exception as e:
            # Handle all other unexpected errors
            logger.error(f"Unexpected error on {request.url}: {str(e)}")
            logger.error(f"Traceback: {traceback.format_exc()}")

            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal Server Error",
                    "message": "An unexpected error occurred",
                    "arabic": AR["unexpected"],
                    "path": str(request.url.path)
                }
            )
