#!/usr/bin/env python3
"""Run the Campus Sessions application"""
import uvicorn

from campus_sessions.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "campus_sessions.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
