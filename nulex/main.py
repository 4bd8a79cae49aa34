import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from nulex import config
from nulex.core.logging import configure_logging, request_id_var
from nulex.errors import NulexError
from nulex.routers import admin, payments, tasks, users, wallet, withdrawals

configure_logging(
    environment=config.ENVIRONMENT,
    log_level=config.LOG_LEVEL,
    log_path=config.APP_LOG_PATH,
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=config.APP_NAME,
    version=config.APP_VERSION,
    description="Referral and micro-task rewards API",
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Short ID for readability
        request_id = str(uuid.uuid4())[:8]
        request_id_var.set(request_id)
        request.state.request_id = request_id

        start_time = time.time()
        logger.info(
            f"REQUEST | method={request.method} | path={request.url.path} | "
            f"ip={request.client.host if request.client else 'unknown'}"
        )
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"ERROR | method={request.method} | path={request.url.path} | "
                f"error={type(e).__name__}: {e} | time={time.time() - start_time:.3f}s",
                exc_info=True,
            )
            raise

        logger.info(
            f"RESPONSE | method={request.method} | path={request.url.path} | "
            f"status={response.status_code} | time={time.time() - start_time:.3f}s"
        )
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NulexError)
async def nulex_error_handler(request: Request, exc: NulexError):
    logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


app.include_router(users.router)
app.include_router(tasks.router)
app.include_router(payments.router)
app.include_router(withdrawals.router)
app.include_router(wallet.router)
app.include_router(admin.router)
