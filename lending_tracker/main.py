import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import database
from .config import settings
from .exceptions import InternalError, LendingError
from .routers import auth, catalog, loans, status as status_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Board Game & Book Lending Tracker")


@app.on_event("startup")
async def on_startup():
    """
    アプリケーションの起動時にデータベースのテーブルを作成します。

    このイベントハンドラーは、リクエストの受付前に呼び出され、
    データベース接続を確立し、不足しているテーブルを自動的に作成します。
    """
    await database.init_models()
    logger.info("データベースの初期化が完了しました。")


@app.on_event("shutdown")
async def on_shutdown():
    """
    アプリケーションの終了時にデータベース接続を解放します。
    """
    await database.dispose_engine()
    logger.info("データベース接続を解放しました。")


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # 型の不一致などは 422 ではなく 400 として返す
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "; ".join(details) or "Invalid request"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} の処理中にデータベースエラーが発生しました。")
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content={"message": error.message})


# ルーターの登録
app.include_router(auth.router)
app.include_router(catalog.boardgames_router)
app.include_router(catalog.books_router)
app.include_router(loans.router)
app.include_router(status_router.router)
