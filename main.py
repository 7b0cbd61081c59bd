import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from config import settings
from logging_setup import setup_logging

setup_logging(level=settings.log_level, log_dir=settings.log_dir)

from db.database import engine, Base

# models を import しておく（create_all がテーブルを認識するため）
from models.user import User
from models.task import Task

from routers import auth, tasks
from services.exceptions import AlreadyCompleted, TaskNotFound, TaskOperationError

logger = logging.getLogger(__name__)

# 起動時間の記録（任意）
STARTED_AT = time.time()

# 業務エラー -> HTTP ステータス（ここに無いものは 422）
ERROR_STATUS = {
    TaskNotFound: 404,
    AlreadyCompleted: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    起動時に1回だけ実行される処理
    - DBテーブル作成
    """
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
    yield


app = FastAPI(title="Task API", lifespan=lifespan)

# --- CORS設定（開発用：本番は allow_origins を絞るの推奨）---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- ルーター ---
app.include_router(auth.router)
app.include_router(tasks.router)


# --- エラーハンドラ ---
@app.exception_handler(TaskOperationError)
async def _task_operation_error(request: Request, exc: TaskOperationError):
    return JSONResponse(
        status_code=ERROR_STATUS.get(type(exc), 422),
        content={"message": exc.message, "code": exc.code},
    )


@app.exception_handler(OperationalError)
async def _store_unavailable(request: Request, exc: OperationalError):
    # ロック待ちタイムアウト・接続断など。クライアント側でリトライしてもらう
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=503,
        content={"message": "The service is temporarily unavailable, please retry.", "code": "store_unavailable"},
        headers={"Retry-After": "1"},
    )


# --- コールドスタート対策：超軽量エンドポイント（DBに触らない） ---
@app.get("/ping", include_in_schema=False)
def ping():
    return {
        "ok": True,
        "service": "task-api",
        "ts": datetime.now(timezone.utc).isoformat(),
        "uptime_sec": round(time.time() - STARTED_AT, 2),
    }
