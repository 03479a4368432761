import uvicorn
import time
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from healer.api.heal import router as heal_router
from healer.api.memory import router as memory_router
from healer.runtime import HealerRuntime
from healer.utils.logging_config import setup_logging

# Initialize enhanced logging
setup_logging(level=logging.INFO)
logger = logging.getLogger("main")


# ---------------------------------------------------------------------------
# Lifespan: fix cache and HTTP clients live for the whole process
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = HealerRuntime()
    app.state.runtime = runtime
    logger.info("Healer runtime started")
    try:
        yield
    finally:
        await runtime.close()


app = FastAPI(title="API Self-Healing Agent", lifespan=lifespan)

# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Incoming: {request.method} {request.url.path} from {client_host}")

        try:
            response = await call_next(request)
            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"Outgoing: {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Time: {process_time:.2f}ms"
            )
            return response
        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url.path} - Error: {str(e)}")
            raise

app.add_middleware(LoggingMiddleware)

# Health endpoint
@app.get("/health")
async def health_check(request: Request):
    router = getattr(request.app.state.runtime.policy, "router", None)
    providers = router.provider_health_state if router is not None else {}
    return {"status": "ok", "providers": providers}


# Register routers
app.include_router(heal_router, tags=["Healing"])
app.include_router(memory_router, tags=["Memory"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
