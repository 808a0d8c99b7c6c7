"""CLI argument parsing and uvicorn entry point."""

import logging
import os


def main():
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="DialDesk API Server")
    parser.add_argument("--host", default=os.getenv("DIALDESK_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("DIALDESK_PORT", "8000")))
    parser.add_argument("--config", default=None, help="Path to YAML config (overrides DIALDESK_CONFIG)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("DIALDESK_LOG_LEVEL", "info"),
        choices=["debug", "info", "warning", "error"],
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(levelname)s: %(name)s - %(message)s",
    )

    # DIALDESK_CONFIG is read when the app module is imported
    if args.config:
        os.environ["DIALDESK_CONFIG"] = args.config

    from .app import api
    uvicorn.run(api, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
