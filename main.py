import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskgraph.config.settings import settings
from taskgraph.errors import TaskGraphError
from taskgraph.routers import auth, entities, notifications

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Task Graph API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Route registration
app.include_router(auth.router)
app.include_router(entities.router)
app.include_router(notifications.router)


@app.exception_handler(TaskGraphError)
async def task_graph_error_handler(request: Request, exc: TaskGraphError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Root route
@app.get("/")
def read_root():
    return {"message": "Task Graph API"}


@app.get("/health")
def health():
    return {"status": "ok"}
