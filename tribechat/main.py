import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tribechat.config import settings
from tribechat.database import AsyncSessionLocal, create_tables, get_redis
from tribechat.exceptions import ChatError, http_status_for
from tribechat.object_storage import ObjectStorage
from tribechat.services.chat_service import build_chat_services
from tribechat.websocket_manager import ConnectionManager

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("botocore").setLevel(logging.WARNING)
logging.getLogger("boto3").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()

    redis_client = get_redis()
    app.state.manager = ConnectionManager(send_timeout=settings.STORAGE_TIMEOUT_SECONDS)
    app.state.chat_services = build_chat_services(
        redis_client,
        AsyncSessionLocal,
        app.state.manager,
        ObjectStorage(
            settings.OBJECT_STORAGE_BUCKET,
            region=settings.OBJECT_STORAGE_REGION,
            endpoint_url=settings.OBJECT_STORAGE_ENDPOINT,
        ),
        batch_size=settings.BUFFER_BATCH_SIZE,
        ttl_seconds=settings.BUFFER_TTL_SECONDS,
        delete_window_minutes=settings.DELETE_WINDOW_MINUTES,
        timeout=settings.STORAGE_TIMEOUT_SECONDS,
    )
    logger.info("%s %s started", settings.APP_NAME, settings.VERSION)
    yield
    await redis_client.aclose()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Tribechat messaging API",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    return JSONResponse(
        status_code=http_status_for(exc),
        content={"code": exc.code, "detail": exc.message},
    )

from tribechat.api.v1 import users, chats, messages, websocket

app.include_router(users.router, prefix="/api/v1/users", tags=["users"])
app.include_router(chats.router, prefix="/api/v1/chats", tags=["chats"])
app.include_router(messages.router, prefix="/api/v1/messages", tags=["messages"])
app.include_router(websocket.router, prefix="/api/v1/ws", tags=["websocket"])

@app.get("/")
async def root():
    return {"message": "Tribechat API", "version": settings.VERSION}

@app.get("/health")
async def health():
    return {"status": "ok"}
