import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database.db import open_store
from eduscan import config
from eduscan.logging_setup import setup_logging
from eduscan.models import DEMO_STUDENTS
from eduscan.notifier import NotificationDispatcher
from eduscan.routers.attendance import router as attendance_router
from eduscan.routers.core import router as core_router
from eduscan.routers.scan import router as scan_router
from eduscan.routers.students import router as students_router
from eduscan.services.attendance import AttendanceController
from eduscan.services.delivery import WhatsAppLinkChannel
from eduscan.services.text_generation import GeminiTextGenerator

logger = logging.getLogger(__name__)

app = FastAPI(title="EduScan API")


# -----------------------------
# CORS (React dev server)
# -----------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_controller() -> AttendanceController:
    """Wire store, text generator, delivery channel and controller from config."""
    store = open_store(config.STORE_BACKEND, config.DB_PATH)

    generator = None
    if config.GEMINI_API_KEY:
        generator = GeminiTextGenerator(
            config.GEMINI_API_KEY,
            model=config.TEXT_MODEL,
            api_url=config.TEXT_API_URL,
            temperature=config.TEXT_TEMPERATURE,
            max_output_tokens=config.TEXT_MAX_OUTPUT_TOKENS,
            request_timeout=config.TEXT_TIMEOUT_SECONDS,
        )
    else:
        logger.warning("No text generation API key configured; using template messages")

    dispatcher = NotificationDispatcher(
        generator,
        channel=WhatsAppLinkChannel(max_outbox=config.NOTIFICATION_BUFFER_SIZE),
        timeout_seconds=config.TEXT_TIMEOUT_SECONDS,
        policy=config.MESSAGE_POLICY,
        country_code=config.PHONE_COUNTRY_CODE,
    )
    controller = AttendanceController(
        store,
        dispatcher,
        namespace=config.STORE_NAMESPACE,
        directory_key=config.DIRECTORY_KEY,
        cooldown_ms=config.SCAN_COOLDOWN_MS,
        reopen_delay_ms=config.SCAN_REOPEN_DELAY_MS,
        auto_deliver_present=config.AUTO_DELIVER_PRESENT,
        auto_deliver_absences=config.AUTO_DELIVER_ABSENCES,
        notification_buffer_size=config.NOTIFICATION_BUFFER_SIZE,
    )
    if config.SEED_DEMO_STUDENTS and len(controller.directory) == 0:
        controller.seed_students(DEMO_STUDENTS)
    return controller


# -----------------------------
# Startup
# -----------------------------
@app.on_event("startup")
def _startup():
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    app.state.controller = build_controller()
    logger.info(
        "EduScan ready: %d students, store=%s",
        len(app.state.controller.directory),
        config.STORE_BACKEND,
    )


app.include_router(core_router)
app.include_router(scan_router)
app.include_router(students_router)
app.include_router(attendance_router)


def run() -> None:
    uvicorn.run("eduscan.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
