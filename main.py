import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

import config
from core.errors import CoinEconomyError
from core.logging import configure_logging, request_id_var

log_level = configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

from app.db import create_tables  # noqa: E402
from app.routers.messaging.api import router as messaging_router  # noqa: E402
from app.routers.payments.api import router as payments_router  # noqa: E402

# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description="Coin wallet, pay-per-message spending and Stripe Checkout for creator subscriptions and unlocks",
    version=config.APP_VERSION,
    swagger_ui_parameters={
        "docExpansion": "none",
        "displayRequestDuration": True,
        "filter": True,
        "defaultModelsExpandDepth": 2,
        "defaultModelExpandDepth": 2,
    },
)


# Add security scheme
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        description="""
        peakboo Coins API

        ## Authentication
        Send the Descope session token as a Bearer token.
        The Stripe webhook and the coin/gift catalogs are public.

        Format: `Authorization: Bearer <session_token>`
        """,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    openapi_schema["security"] = [{"bearerAuth": []}]
    app.openapi_schema = openapi_schema
    return openapi_schema


app.openapi = custom_openapi


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Short ID for readability
        request_id = str(uuid.uuid4())[:8]
        token = request_id_var.set(request_id)
        request.state.request_id = request_id

        start_time = time.time()
        query_str = f"?{request.url.query}" if request.query_params else ""
        logger.info(
            f"REQUEST | method={request.method} | path={request.url.path}{query_str} | "
            f"ip={request.client.host if request.client else 'unknown'}"
        )

        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(
                f"RESPONSE | method={request.method} | path={request.url.path} | "
                f"status={response.status_code} | time={process_time:.3f}s"
            )
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"ERROR | method={request.method} | path={request.url.path} | "
                f"error={type(e).__name__}: {str(e)} | time={process_time:.3f}s",
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)


@app.exception_handler(CoinEconomyError)
async def coin_economy_error_handler(request: Request, exc: CoinEconomyError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Add request logging middleware (before CORS so it logs all requests)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", "Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
)

app.include_router(payments_router)
app.include_router(messaging_router)


@app.on_event("startup")
async def startup_event():
    await create_tables()
    logger.info(f"{config.APP_NAME} started successfully")

    from fastapi.routing import APIRoute

    logger.info("=== Registered Routes ===")
    for route in app.routes:
        if isinstance(route, APIRoute):
            methods = ",".join(route.methods)
            logger.info(f"{methods:8} {route.path}")
    logger.info("=== End of Routes ===")


@app.get("/")
async def read_root():
    """
    Root endpoint to check if the server is running.
    Returns basic API information.
    """
    return {
        "status": "online",
        "message": f"Welcome to {config.APP_NAME}!",
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
    }


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring.
    """
    return {"status": "healthy"}
