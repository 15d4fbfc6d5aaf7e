#!/usr/bin/env python3
# backend/run_backend.py
"""
Development API runner.
For local development only: SQLite datastore and the offline stub web provider
unless the environment says otherwise.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

# Default SITE_MODE for local development
os.environ.setdefault("SITE_MODE", "local")
os.environ.setdefault("EXTERNAL_PROVIDERS", "stub_web")

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting Eventa API (SITE_MODE={os.getenv('SITE_MODE')}) on http://localhost:{port}")
    print(f"API Docs: http://localhost:{port}/docs")

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
