#!/usr/bin/env python3
"""
Command-line interface for the MediBox guardian notifier.

Usage:
    uv run python cli.py [command] [options]

Commands:
    serve       Start the HTTP notification endpoint
    listen      Watch device records and notify on trigger flags
    demo        Run demo scenarios against the fixture data
    test        Run the test suite

Examples:
    uv run python cli.py serve --port 8080
    uv run python cli.py listen
    uv run python cli.py listen --in-memory
    uv run python cli.py demo all
"""

import argparse
import logging
import signal
import subprocess
import sys
import threading

from shared.config import get_settings

logger = logging.getLogger("cli")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
        datefmt="%H:%M:%S",
    )


def run_demo(scenario: str) -> None:
    """Run a demo scenario."""
    from dispatch.demo import run_dose_taken_demo, run_missed_dose_demo

    if scenario == "dose-taken":
        run_dose_taken_demo()
    elif scenario == "missed-dose":
        run_missed_dose_demo()
    elif scenario == "all":
        run_dose_taken_demo()
        run_missed_dose_demo()
    else:
        print(f"Unknown scenario: {scenario}")
        sys.exit(1)


def run_listener(in_memory: bool) -> None:
    """Run the change watcher until interrupted."""
    from shared.channels import PushSender, SMSSender
    from dispatch.orchestrator import Dispatcher
    from dispatch.watcher import DeviceWatcher

    settings = get_settings()
    configure_logging(settings.log_level)

    if in_memory:
        from shared.data_store import InMemoryStore
        from dispatch.demo import logging_push_transport

        store = InMemoryStore(data_dir=settings.data_dir)
        push_sender = PushSender(settings, transport=logging_push_transport)
    else:
        from shared.firebase import FirebaseStore, init_firebase

        app = init_firebase(settings)
        store = FirebaseStore(app)
        push_sender = PushSender(settings, app=app)

    dispatcher = Dispatcher(store=store, push_sender=push_sender, sms_sender=SMSSender(settings))
    watcher = DeviceWatcher(store, dispatcher)

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda signum, frame: stop.set())
    signal.signal(signal.SIGTERM, lambda signum, frame: stop.set())

    watcher.start()
    logger.info("Notification listener running. Press Ctrl+C to stop.")
    try:
        stop.wait()
    finally:
        watcher.stop()


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = ["uv", "run", "pytest"] + args
    subprocess.run(cmd)


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    import uvicorn

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    uvicorn.run("api.main:create_app", factory=True, host=host, port=port, reload=reload)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="MediBox Guardian Notifier CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve --reload
  %(prog)s listen --in-memory
  %(prog)s demo missed-dose
  %(prog)s test -v
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP notification endpoint")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    # Listen command
    listen_parser = subparsers.add_parser("listen", help="Watch devices and notify on trigger flags")
    listen_parser.add_argument(
        "--in-memory",
        action="store_true",
        help="Use the JSON fixtures and a logging push transport instead of Firebase",
    )

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run demo scenarios")
    demo_parser.add_argument(
        "scenario",
        nargs="?",
        default="all",
        choices=["dose-taken", "missed-dose", "all"],
        help="Which scenario to run",
    )

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    args = parser.parse_args()

    if args.command == "serve":
        run_server(args.host, args.port, args.reload)
    elif args.command == "listen":
        run_listener(args.in_memory)
    elif args.command == "demo":
        configure_logging("INFO")
        run_demo(args.scenario)
    elif args.command == "test":
        run_tests(args.pytest_args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
