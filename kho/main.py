"""
Kho Dashboard FastAPI Main Application
Entry point for the warehouse voucher REST API
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kho.api.v1.api_router import api_router
from kho.core.config import settings
from kho.core.exceptions import (
    InsufficientPermissionsError,
    KhoException,
    RemoteServiceError,
    ValidationError,
    VoucherNotFoundError,
    VoucherStateError,
)
from kho.core.logging import get_logger, setup_logging
from kho.services.appsheet_client import AppSheetTableClient
from kho.services.notifications import NotificationDispatcher, ZaloNotifier
from kho.services.voucher import VoucherLifecycleManager

logger = get_logger("app")

# Most specific first
EXCEPTION_STATUS = (
    (VoucherStateError, 409, "voucher_state_error"),
    (ValidationError, 400, "validation_error"),
    (VoucherNotFoundError, 404, "not_found"),
    (InsufficientPermissionsError, 403, "permission_denied"),
    (RemoteServiceError, 502, "remote_service_error"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown

    Builds the shared remote client, notifier and voucher manager, and loads
    the collections. A failed initial load leaves the collections empty.
    """
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    client = AppSheetTableClient(settings)
    notifier = ZaloNotifier(settings)
    dispatcher = NotificationDispatcher(notifier, settings)
    manager = VoucherLifecycleManager(client, dispatcher=dispatcher, config=settings)
    app.state.voucher_manager = manager

    try:
        stats = await manager.refresh()
        logger.info(f"Initial load completed: {stats.total} voucher(s)")
    except RemoteServiceError as e:
        logger.error(f"Initial load failed: {e.message} ({e.detail})")

    yield

    logger.info("Shutting down application")
    await dispatcher.drain()
    await notifier.close()
    await client.close()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## Kho Dashboard API

    Warehouse inbound/outbound vouchers (phiếu nhập / xuất kho) and their approval.

    ### Key Features:
    - **Vouchers**: create, edit and delete pending vouchers with their material lines
    - **Approval**: approve or reject pending vouchers, one at a time or in bulk
    - **Import**: batched import of vouchers and lines
    - **Printing**: field maps for the warehouse slip template
    - **Notifications**: Zalo Bot messages on creation and approval
    """,
    docs_url=settings.DOCS_URL,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check(request: Request):
    """
    Health check endpoint for monitoring and load balancers

    Returns service status and the number of vouchers loaded
    """
    manager = getattr(request.app.state, "voucher_manager", None)
    return {
        "status": "healthy" if manager is not None else "starting",
        "version": settings.APP_VERSION,
        "vouchers_loaded": len(manager.store) if manager is not None else 0,
        "notifications": "enabled" if settings.notifications_active else "disabled",
        "debug": settings.DEBUG,
    }


# System information endpoint
@app.get("/info", tags=["System"])
async def system_info():
    """
    System information endpoint

    Returns application configuration and build information
    """
    return {
        "application": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Warehouse voucher lifecycle and approval",
        "api_version": "v1",
        "docs_url": settings.DOCS_URL,
        "tables": {
            "vouchers": settings.VOUCHER_TABLE,
            "voucher_lines": settings.VOUCHER_LINE_TABLE,
        },
        "features": [
            "Voucher creation and editing",
            "Voucher approval and rejection",
            "Bulk delete, approve, reject and import",
            "Print payloads",
            "Zalo notifications",
        ],
    }


@app.exception_handler(KhoException)
async def kho_exception_handler(request: Request, exc: KhoException):
    """
    Map application exceptions to JSON error responses

    Args:
        request: FastAPI request object
        exc: Exception that occurred

    Returns:
        JSON error response
    """
    status_code, error = 500, "server_error"
    for exc_type, code, name in EXCEPTION_STATUS:
        if isinstance(exc, exc_type):
            status_code, error = code, name
            break

    if status_code >= 500:
        logger.error(f"{error}: {exc.message} ({exc.detail})")

    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": exc.message, "detail": exc.detail},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "server_error",
            "message": "Đã xảy ra lỗi không mong muốn",
            "detail": str(exc) if settings.DEBUG else None,
        },
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kho.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
