from dotenv import load_dotenv
load_dotenv()

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from brainguard import __version__
from brainguard.config import settings
from brainguard.context import build_context
from brainguard.database import engine
from brainguard.routers import daily_summary, monitoring, notifications, score, settings as settings_router, usage


def create_app(context=None) -> FastAPI:
    app = FastAPI(
        title="Brainguard",
        description="Screen time tracking, brain score and usage alert API",
        version=__version__,
    )

    # CORS 설정 (기기 앱은 Origin 없음 → *)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.context = context or build_context(settings, db_engine=engine)

    @app.on_event("startup")
    def on_startup():
        app.state.context.startup()

    @app.on_event("shutdown")
    def on_shutdown():
        app.state.context.shutdown()

    # Router 등록 (endpoint prefix: /api)
    app.include_router(usage.router, prefix="/api/usage", tags=["Usage"])
    app.include_router(score.router, prefix="/api/score", tags=["Score"])
    app.include_router(daily_summary.router, prefix="/api/daily-summary", tags=["Daily-summary"])
    app.include_router(monitoring.router, prefix="/api/monitoring", tags=["Monitoring"])
    app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
    app.include_router(settings_router.router, prefix="/api/settings", tags=["Settings"])

    # 기본 헬스체크용 엔드포인트
    @app.get("/")
    def root():
        return {"status": "ok", "message": "Backend is running."}

    return app


logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = create_app()
