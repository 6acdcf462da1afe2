"""
Run the ECOS chatbot REST API with uvicorn

Usage:
    python devops/scripts/run_api.py              # development (auto-reload)
    python devops/scripts/run_api.py --production # production (several workers)
"""
import argparse

import uvicorn

APP_FACTORY = "ecosbot.api.main:create_app"


def run_dev_server(port: int):
    """Development server with auto-reload"""
    print("=" * 80)
    print("ECOS Chatbot - Development Server")
    print(f"Server: http://localhost:{port}")
    print(f"Swagger UI: http://localhost:{port}/docs")
    print("=" * 80)

    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info",
        access_log=True,
    )


def run_production_server(port: int, workers: int):
    print("=" * 80)
    print("ECOS Chatbot - Production Server")
    print(f"Server: http://localhost:{port} ({workers} workers)")
    print("=" * 80)

    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host="0.0.0.0",
        port=port,
        reload=False,
        workers=workers,
        log_level="warning",
        access_log=True,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run ECOS Chatbot API Server")
    parser.add_argument(
        "--production",
        action="store_true",
        help="Run in production mode (no auto-reload, multiple workers)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Worker processes in production mode (default: 4)",
    )

    args = parser.parse_args()

    if args.production:
        run_production_server(args.port, args.workers)
    else:
        run_dev_server(args.port)
