#!/usr/bin/env python3
"""
Start the station check-in API under uvicorn
"""
import os

import uvicorn
from dotenv import load_dotenv

if __name__ == "__main__":
    # Settings read the same file, but uvicorn options below need it first
    env_file = os.environ.get("ENV_FILE", ".env")
    if load_dotenv(env_file, override=False):
        print(f"✓ Check-in settings loaded from {env_file}")

    uvicorn.run(
        "checkin.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=os.environ.get("RELOAD", "false").lower() == "true",
        log_level=os.environ.get("LOG_LEVEL", "info"),
    )
