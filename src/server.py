"""HTTP server runner for Altershop.

Usage:
    python src/server.py                        # 0.0.0.0:8000
    python src/server.py --port 9000 --reload   # development
"""

import argparse

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Altershop API server")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")
    parser.add_argument("--workers", type=int, default=1, help="Number of worker processes")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    uvicorn.run(
        "app:app",
        host=args.host,
        port=args.port,
        workers=args.workers,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
