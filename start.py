#!/usr/bin/env python3
"""
Generation Job Service Entrypoint

This script determines which process to run based on the SERVICE_TYPE
environment variable. Set SERVICE_TYPE in each Railway service's settings.

SERVICE_TYPE values:
  - web (default): Run the FastAPI web server via gunicorn
  - worker-text: Run the text-generation worker pool
  - worker-image: Run the image-generation worker pool
  - sweeper: Run the stalled-job sweeper
"""

import os
import sys

SERVICE_TYPE = os.environ.get("SERVICE_TYPE", "web")
PORT = os.environ.get("PORT", "8080")

print("=" * 50)
print(f"Generation Job Service: {SERVICE_TYPE}")
print("=" * 50)

if SERVICE_TYPE == "web":
    print("Starting web server (gunicorn)...")
    cmd = [
        "gunicorn", "backend.api.main:app",
        "--workers", "2",
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--bind", f"0.0.0.0:{PORT}",
        "--timeout", "120",
        "--graceful-timeout", "30"
    ]
elif SERVICE_TYPE == "worker-text":
    print("Starting text-generation worker pool...")
    cmd = ["python", "-m", "backend.queue.run_worker", "--family", "text"]
elif SERVICE_TYPE == "worker-image":
    print("Starting image-generation worker pool...")
    cmd = ["python", "-m", "backend.queue.run_worker", "--family", "image"]
elif SERVICE_TYPE == "sweeper":
    print("Starting stalled-job sweeper...")
    cmd = ["python", "-m", "backend.queue.run_sweeper"]
else:
    print(f"ERROR: Unknown SERVICE_TYPE: {SERVICE_TYPE}")
    print("Valid values: web, worker-text, worker-image, sweeper")
    sys.exit(1)

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

# Replace this process with the actual command
os.execvp(cmd[0], cmd)
