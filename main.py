import sys
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config.database as database
from config.logging_config import setup_logging
from config.settings import settings
from api.absentees.absentees_scheduler import AbsenteeScheduler
from api.absentees.absentees_service import AbsenteeSweep
from api.notifications.notifications_service import NotificationDispatcher
from utils.exceptions import AttendanceError

logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    if settings.AUTO_CREATE_TABLES:
        await database.init_models()

    # composition root: long-lived collaborators live on app.state
    dispatcher = NotificationDispatcher(session_factory=database.SessionLocal)
    sweep = AbsenteeSweep(dispatcher, session_factory=database.SessionLocal)
    scheduler = AbsenteeScheduler(sweep)
    app.state.dispatcher = dispatcher
    app.state.sweep = sweep
    app.state.scheduler = scheduler

    if settings.ABSENTEE_SCHEDULER_ENABLED:
        scheduler.start()
    logger.info("%s started (%s)", settings.APP_NAME, settings.ENVIRONMENT)
    try:
        yield
    finally:
        scheduler.shutdown()
        await database.engine.dispose()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
# CORS: use our parsed list
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(AttendanceError)
async def attendance_error_handler(request: Request, exc: AttendanceError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.kind, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.to_dict()})


#load all routes
def load_routes(directory: Path):
    import importlib.util
    routers = []
    for item in sorted(directory.rglob("*_routes.py")):
        spec = importlib.util.spec_from_file_location(item.stem, str(item))
        module = importlib.util.module_from_spec(spec)
        sys.modules[item.stem] = module
        spec.loader.exec_module(module)
        if hasattr(module, "router"):
            routers.append(module.router)
    return routers

for router in load_routes(Path(__file__).parent / "api"):
    app.include_router(router, prefix="/api")


@app.get("/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME, "environment": settings.ENVIRONMENT}


@app.get("/")
def home():
    return {"message": f"Welcome to {settings.APP_NAME}"}

# ✅ Add this block to run locally
if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", settings.PORT or 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=settings.DEBUG)
