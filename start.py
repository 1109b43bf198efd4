#!/usr/bin/env python3
"""
Image Generation Service Entrypoint

This script determines which process to run based on the SERVICE_TYPE
environment variable.

SERVICE_TYPE values:
  - web (default): Run the FastAPI web server via gunicorn
  - worker: Run the standalone image worker (set ENABLE_IMAGE_WORKER=false
    on the web service when using it)
"""

import os
import sys

SERVICE_TYPE = os.environ.get("SERVICE_TYPE", "web")
PORT = os.environ.get("PORT", os.environ.get("API_PORT", "8080"))
WEB_WORKERS = os.environ.get("WEB_CONCURRENCY", "1")

print("=" * 50)
print(f"Image Generation Service: {SERVICE_TYPE}")
print("=" * 50)

if SERVICE_TYPE == "web":
    print("Starting web server (gunicorn)...")
    cmd = [
        "gunicorn", "imagegen.api.main:app",
        "--workers", WEB_WORKERS,
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--bind", f"0.0.0.0:{PORT}",
        "--timeout", "120",
        "--graceful-timeout", "30"
    ]
elif SERVICE_TYPE == "worker":
    print("Starting image worker...")
    cmd = [sys.executable, "-m", "imagegen.jobs.run_worker"]
else:
    print(f"ERROR: Unknown SERVICE_TYPE: {SERVICE_TYPE}")
    print("Valid values: web, worker")
    sys.exit(1)

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

# Replace this process with the actual command
os.execvp(cmd[0], cmd)
