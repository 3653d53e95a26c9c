"""OB 結算與結合試算系統 - API"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import config as app_config
from app.database import init_db
from app.routers import (
    ob_calculator,
    ob_exclusions,
    ob_manual_adjustments,
    ob_preferences,
    ob_settings,
    ob_settlement,
    ob_target_outlets,
)

logging.basicConfig(
    level=logging.DEBUG if app_config.settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("%s 啟動，規則目錄：%s", app_config.settings.app_name, app_config.settings.resolved_rules_dir())
    yield


app = FastAPI(
    title=app_config.settings.app_name,
    description="OB settlement & bundle-discount calculation",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in app_config.settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ob_calculator.router)
app.include_router(ob_exclusions.router)
app.include_router(ob_target_outlets.router)
app.include_router(ob_manual_adjustments.router)
app.include_router(ob_settlement.router)
app.include_router(ob_settings.router)
app.include_router(ob_preferences.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("未處理的例外 %s %s", request.method, request.url.path)
    detail = str(exc) if exc else "Internal Server Error"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


@app.get("/")
def home():
    return {"message": "OB 結算系統運行中"}
