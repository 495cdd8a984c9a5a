"""FastAPI application entry point for the Canvas Coach bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.dms.DMSClientManager import DMSClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.exceptions import CoachError
from shared.extraction.TextExtractor import TextExtractor
from services.coach_pipeline.CoachService import CoachService
from server.dependencies.errors import handle_coach_error
from server.routers.CoachRouter import router as coach_router
from server.routers.DropboxRouter import router as dropbox_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    dms_client = DMSClientManager(helper_config=app.state.helper_config).get_client()
    llm_client = LLMClientManager(helper_config=app.state.helper_config).get_client()

    logging.info("Booting all clients...")
    for client in [dms_client, llm_client]:
        await client.boot()
    logging.info("All clients booted successfully.")

    app.state.dms_client = dms_client
    app.state.llm_client = llm_client
    app.state.text_extractor = TextExtractor(helper_config=app.state.helper_config)
    app.state.coach_service = CoachService(
        helper_config=app.state.helper_config,
        dms_client=dms_client,
        llm_client=llm_client,
    )

    await check_connections(llm_client)

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    logging.info("Shutting down, closing all clients...")
    for client in [dms_client, llm_client]:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="canvas_coach_bridge",
    description=(
        "Answers Canvas LMS questions from the user's own manuals in Dropbox. "
        "Documents are ranked per question (keyword scoring or an LLM judgement), packed into a "
        "budget-bounded prompt and answered as a server-sent event stream via POST /ask."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(CoachError, handle_coach_error)
app.include_router(coach_router)
app.include_router(dropbox_router)


async def check_connections(llm_client: LLMClientInterface) -> None:
    """Check the completion service on startup.

    The Document Store is not checked: every Dropbox call uses the caller's own
    token. A failing completion service is logged, not fatal, so the Dropbox
    routes stay available.
    """
    try:
        await llm_client.do_healthcheck()
        logging.info("LLM client '%s' is reachable.", llm_client.get_service_label(), color="green")
    except CoachError as e:
        logging.warning(
            "LLM client '%s' is not reachable (%s). Answers and smart search will fail.",
            llm_client.get_service_label(),
            e.message,
        )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting canvas_coach_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", os.getcwd()),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
