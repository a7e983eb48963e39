"""CLI entry point for the stitchflow API server."""

import argparse
import os


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="stitchflow-server",
        description="stitchflow API server: two-render video generation and stitching",
    )
    parser.add_argument("--host", default=None, help="Bind host (default: STITCHFLOW_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: STITCHFLOW_PORT or 3000)")
    parser.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: in-memory job store, console logs",
    )
    parser.add_argument("--merge-workers", type=int, default=None, help="Concurrent merge limit")
    args = parser.parse_args(argv)

    if args.local:
        os.environ["STITCHFLOW_STORE_BACKEND"] = "memory"
        os.environ["STITCHFLOW_JSON_LOGS"] = "0"
    if args.merge_workers is not None:
        os.environ["STITCHFLOW_MERGE_WORKERS"] = str(args.merge_workers)

    import uvicorn

    from stitchflow.config import Settings

    settings = Settings()
    uvicorn.run(
        "stitchflow.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
    )


if __name__ == "__main__":
    main()
