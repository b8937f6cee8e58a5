#!/usr/bin/env python3
"""
SignalLoop - Online-learning price direction pipeline

Usage:
    python run.py                    # Web API + WebSocket on default port, pipeline autostarts
    python run.py -p 9000            # Custom port
    python run.py --headless         # No web server, periodic console status
    python run.py --predictor baseline --store jsonl
    python run.py --help             # Show all options
"""

import argparse
import asyncio


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='signalloop',
        description='SignalLoop - Online-learning price direction pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py                     Start web API (pipeline starts immediately)
  python run.py --headless          Run with console status only
  python run.py --no-autostart      Start later via POST /api/control/start
"""
    )
    parser.add_argument('--host', type=str, default=None,
                        help='Web bind host (default: settings.web_host)')
    parser.add_argument('-p', '--port', type=int, default=None,
                        help='Web port (default: settings.web_port)')
    parser.add_argument('--headless', action='store_true',
                        help='Run without the web server')
    parser.add_argument('--predictor', choices=['baseline', 'mlp'], default=None,
                        help='Predictor strategy (default: settings.predictor_kind)')
    parser.add_argument('--store', choices=['memory', 'jsonl'], default=None,
                        help='Record store (default: settings.store_kind)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for the simulator, buffer sampling and model init')
    parser.add_argument('--status-interval', type=float, default=10.0,
                        help='Seconds between console status prints in headless mode')
    parser.add_argument('--no-autostart', action='store_true',
                        help='Do not start the pipeline with the web server')
    return parser


async def run_headless(pipeline, status_interval: float) -> None:
    """Run until interrupted, printing the dashboard periodically."""
    from dashboard import Dashboard

    dashboard = Dashboard(pipeline)
    await pipeline.start()
    dashboard.start(status_interval)
    try:
        await asyncio.Event().wait()
    finally:
        await dashboard.stop()
        await pipeline.stop()


def main():
    args = _build_parser().parse_args()

    from core.config import load_settings
    from core.logging_utils import setup_logging
    from core.pipeline import Pipeline

    overrides = {}
    if args.predictor:
        overrides['predictor_kind'] = args.predictor
    if args.store:
        overrides['store_kind'] = args.store
    if args.seed is not None:
        overrides['seed'] = args.seed
    settings = load_settings(**overrides)
    setup_logging(settings.log_level, settings.log_file)

    pipeline = Pipeline(settings)

    if args.headless:
        try:
            asyncio.run(run_headless(pipeline, args.status_interval))
        except KeyboardInterrupt:
            pass
        return

    host = args.host or settings.web_host
    port = args.port or settings.web_port
    print(f"SignalLoop API: http://localhost:{port}/api/health")

    from ui.web_server import run_server
    run_server(pipeline, host=host, port=port, autostart=not args.no_autostart)


if __name__ == "__main__":
    main()
