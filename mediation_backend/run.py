#!/usr/bin/env python3
"""
Quick runner for Mediation Backend
==================================

Usage:
    python -m mediation_backend.run
    # or
    python mediation_backend/run.py
"""

import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))
    print("Starting Mediation Backend...")
    print(f"API docs: http://localhost:{port}/docs")
    print(f"Health:   http://localhost:{port}/health")
    print()

    uvicorn.run(
        "mediation_backend.api:app",
        host="0.0.0.0",
        port=port,
        reload=os.environ.get("RELOAD", "true").lower() == "true",
    )
