"""SignalCore — application entry point.

Boots the FastAPI internal server and provides a CLI for serving the API
or evaluating a single evidence file.
"""

import logging

from fastapi import FastAPI

from signalcore.api.routers import router

app = FastAPI(title="SignalCore Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("signalcore")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from signalcore.config import load_config

    parser = argparse.ArgumentParser(description="SignalCore signal decision engine")
    parser.add_argument(
        "--mode",
        choices=["serve", "evaluate"],
        default="serve",
        help="Run the API server or evaluate one evidence file (default: serve)",
    )
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--port", type=int, help="API port (overrides API_PORT)")
    parser.add_argument("--evidence", help="Evidence JSON file (evaluate mode)")
    parser.add_argument(
        "--balance", type=float, default=1000.0,
        help="Account balance used in evaluate mode (default: 1000)",
    )
    parser.add_argument(
        "--leverage", type=float, default=10.0,
        help="Leverage used in evaluate mode (default: 10)",
    )
    args = parser.parse_args()

    config = load_config(args.env_file)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.mode == "evaluate":
        if not args.evidence:
            parser.error("--evidence is required in evaluate mode")
        _run_evaluate(config, args.evidence, args.balance, args.leverage)
    else:
        _run_server(config, args.port or config.api_port)


def _run_evaluate(config, evidence_path: str, balance: float, leverage: float) -> None:
    """Evaluate one evidence file and print the signal as JSON."""
    import json
    import pathlib

    from signalcore.engine import SignalEngine
    from signalcore.models.evidence import Evidence
    from signalcore.models.signal import AccountContext

    data = json.loads(pathlib.Path(evidence_path).read_text(encoding="utf-8"))
    evidence = Evidence.from_dict(data)
    engine = SignalEngine(config)
    signal = engine.evaluate(
        evidence.symbol, evidence, AccountContext(balance=balance, leverage=leverage),
    )
    print(json.dumps(signal.to_dict(), indent=2))


def _run_server(config, port: int) -> None:
    """Start the API server with a configured engine."""
    import uvicorn

    from signalcore.api.routers import configure_routers
    from signalcore.engine import SignalEngine

    engine = SignalEngine(config)
    configure_routers(engine)
    engine.start()

    logger.info("Starting SignalCore API on port %d", port)
    try:
        uvicorn.run(app, host="0.0.0.0", port=port, log_level=config.log_level.lower())
    finally:
        engine.stop()
        logger.info("SignalCore stopped.")


if __name__ == "__main__":
    _run_cli()
