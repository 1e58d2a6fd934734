import asyncio
import inspect
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from models.agent_config import AgentConfig
from routes.history_route import router as history_router
from routes.task_route import router as task_router
from services.agent.task_supervisor import TaskSupervisor
from services.device.adb_device import AdbDevice
from services.device.app_registry import AppRegistry
from services.openai.reasoning_client import create_openai_client
from utils.database_cleaner import DatabaseCleaner
from utils.database_init import AsyncDatabaseInitializer

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite task history (kept across restarts, at DATABASE_DIR/app.db)
      - the OpenAI async client for the reasoning service
      - the ADB device, the app-name registry and the task supervisor
    and attach them to `app.state`.
    """
    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    # Fails fast when no API key is configured.
    config = AgentConfig.from_env()
    app.state.config_loader = AgentConfig.from_env

    try:
        openai_client = create_openai_client(config)
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc
    app.state.openai_client = openai_client

    app.state.device = AdbDevice(config.adb_serial, config.adb_host, config.adb_port)
    app.state.app_registry = AppRegistry()
    app.state.supervisor = TaskSupervisor(on_stopped=lambda: LOGGER.info("Agent task stopped"))
    app.state.current_run = None

    cleaner = DatabaseCleaner(db_initializer, retention_days=int(os.getenv("HISTORY_RETENTION_DAYS", "30")))
    cleanup_task = asyncio.create_task(cleaner.run_periodic_cleanup())

    try:
        yield
    finally:
        await app.state.supervisor.stop_current_task()

        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass

        # Gracefully close the OpenAI client if it exposes a close/aclose method.
        client = getattr(app.state, "openai_client", None)
        if client is not None:
            aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
            if aclose is not None:
                try:
                    if inspect.iscoroutinefunction(aclose):
                        await aclose()
                    else:
                        result = aclose()
                        if inspect.isawaitable(result):
                            await result
                except Exception as exc:
                    LOGGER.warning("Failed to close OpenAI client: %s", exc)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies DB initializer, OpenAI client and supervisor presence.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        has_openai = (
            hasattr(request.app.state, "openai_client")
            and request.app.state.openai_client is not None
        )
        supervisor = getattr(request.app.state, "supervisor", None)
        return {
            "ok": True,
            "db_initialized": has_db,
            "openai_available": has_openai,
            "task_running": bool(supervisor and supervisor.is_running),
        }

    # Register application routers
    app.include_router(task_router)
    app.include_router(history_router)

    return app


app = create_app()
