"""計薪核心 API - 出勤、時薪期間、加班、每日修正、月薪資與修改申請"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from payroll_core.config import settings
from payroll_core.errors import PayrollError
from payroll_core.routers import (
    attendance,
    daily_overrides,
    edit_requests,
    hourly_rates,
    overtime_config,
    payroll,
)
from payroll_core.services.attendance import run_scheduled_auto_checkout

logger = logging.getLogger(__name__)
_scheduler: AsyncIOScheduler | None = None


async def _auto_checkout_job():
    try:
        closed = await run_scheduled_auto_checkout()
        logger.info("每日自動簽退完成，共 %s 筆", closed)
    except Exception:
        logger.exception("每日自動簽退排程執行失敗")


def _parse_schedule_time(value: str) -> tuple[int, int]:
    """HH:MM；格式錯誤時退回 00:05"""
    try:
        parts = value.strip().split(":")
        return int(parts[0]), int(parts[1]) if len(parts) > 1 else 0
    except (ValueError, IndexError):
        return 0, 5


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _scheduler
    if settings.auto_checkout_enabled:
        _scheduler = AsyncIOScheduler()
        hour, minute = _parse_schedule_time(settings.auto_checkout_schedule_time)
        _scheduler.add_job(
            _auto_checkout_job,
            "cron",
            hour=hour,
            minute=minute,
            id="attendance_auto_checkout",
            replace_existing=True,
        )
        _scheduler.start()
    yield
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None


app = FastAPI(
    title=settings.app_name,
    description="Hourly payroll computation service",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(attendance.router)
# /api/payroll/{payroll_id} 之前先掛子路徑
app.include_router(hourly_rates.router)
app.include_router(overtime_config.router)
app.include_router(daily_overrides.router)
app.include_router(edit_requests.router)
app.include_router(payroll.router)


@app.exception_handler(PayrollError)
async def payroll_error_handler(request, exc: PayrollError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    if isinstance(exc, HTTPException):
        raise exc
    logger.error("unhandled error on %s", request.url.path, exc_info=exc)
    detail = str(exc) if exc else "Internal Server Error"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


@app.get("/")
def home():
    return {"message": "計薪核心運行中"}
