"""
Exam Session API — Main Application
FastAPI application exposing the exam session engine to the learning platform UI.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from exam_engine import config
from exam_engine.routers import sessions


def create_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")

    app = FastAPI(
        title="Exam Session API",
        description="Question bank generation, timed exam sessions, LLM grading and late penalties",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Routers ───────────────────────────────────────────────────────────────
    app.include_router(sessions.router)        # /sessions/*

    @app.get("/")
    def root():
        return {
            "name": "Exam Session API",
            "version": "1.0.0",
            "endpoints": {"docs": "/docs", "sessions": "/sessions"},
        }

    @app.get("/health")
    def health_check():
        return {
            "status": "healthy",
            "service": "exam-session-api",
            "model": config.DEFAULT_MODEL_ID,
            "llm_configured": bool(config.LLM_API_KEY),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8002)
