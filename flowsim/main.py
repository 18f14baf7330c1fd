"""Main FastAPI application for the workflow simulator."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from flowsim.config import get_config, load_config
from flowsim.core.logging import setup_logging, get_logger
from flowsim.core.middleware import ErrorHandlingMiddleware
from flowsim.core.action_resolver import HttpActionResolver, StaticActionResolver
from flowsim.core.step_executor import StepExecutor
from flowsim.core.execution_engine import SimulationEngine
from flowsim.core.graph_manager import GraphManager
from flowsim.api.endpoints import router, init_dependencies


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config = load_config()
    setup_logging(
        level=config.log_level.value,
        log_file=config.log_file,
        log_format=config.log_format,
        structured=config.log_structured,
        max_size=config.log_max_size,
        backup_count=config.log_backup_count
    )
    logger = get_logger(__name__)
    logger.info(f"Starting {config.app_name} {config.app_version}")

    if config.automation_catalog_url:
        action_resolver = HttpActionResolver(
            config.automation_catalog_url, timeout=config.automation_request_timeout
        )
        logger.info(f"Using remote automation catalog at {config.automation_catalog_url}")
    else:
        action_resolver = StaticActionResolver()
        logger.info("Using built-in automation catalog")

    step_executor = StepExecutor(
        action_resolver=action_resolver,
        request_timeout=config.automation_request_timeout
    )
    init_dependencies(
        simulation_engine=SimulationEngine(step_executor),
        graph_manager=GraphManager(),
        action_resolver=action_resolver,
        default_step_delay_ms=config.default_step_delay_ms
    )

    logger.info("Core components initialized")

    yield

    logger.info(f"Shutting down {config.app_name}")


app = FastAPI(
    title="Workflow Simulator",
    description="Simulate workflow graphs built in the visual editor and stream their execution log",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(ErrorHandlingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint for health check."""
    return {"message": "Workflow Simulator is running"}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "workflow-simulator"}


if __name__ == "__main__":
    import uvicorn
    config = get_config()
    uvicorn.run("flowsim.main:app", **config.get_uvicorn_config())
