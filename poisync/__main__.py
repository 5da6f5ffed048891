"""CLI entry point for poisync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .agent import SyncAgent, run_agent
from .config import load_config
from .sync import SyncError


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            # Fallback for non-serializable objects
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def cmd_run(args: argparse.Namespace) -> int:
    """Run the background sync agent."""
    config = load_config(args.config)

    print(f"Starting poisync device: {config.node.name}")
    print(f"Backend: {config.remote.base_url}")
    print(
        f"Sync: {'every ' + str(config.sync.interval_hours) + 'h' if config.sync.enabled else 'disabled'}"
        f"{' (Wi-Fi only)' if config.sync.only_wifi else ''}"
    )

    try:
        await run_agent(config)
    except KeyboardInterrupt:
        print("\nShutting down...")
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


async def cmd_sync(args: argparse.Namespace) -> int:
    """Run one sync now and report the outcome."""
    config = load_config(args.config)

    # One-shot: open storage without registering periodic work
    agent = SyncAgent(config)
    try:
        agent.open()
        outcome = await agent.scheduler.sync_now()
    finally:
        await agent.stop()

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
    else:
        print(f"Sync {outcome.status.value}")
        print(f"  {outcome.message}")
        for error in outcome.errors:
            print(f"  {type(error).__name__}: {error}")

    return 0 if outcome.ok else 1


async def cmd_status(args: argparse.Namespace) -> int:
    """Show local state and backend reachability."""
    config = load_config(args.config)
    agent = SyncAgent(config)

    try:
        agent.open()
        status_data = agent.get_status()
        status_data["timestamp"] = datetime.now().isoformat()
        status_data["remote_reachable"] = await agent.remote.health_check()
    finally:
        await agent.stop()

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("poisync Status")
    print("==============")
    print(f"Device: {status_data['node']}")
    print(f"User: {status_data['user_id'] or 'not signed in'}")
    print()
    print(f"Backend ({status_data['remote_url']}):")
    print(f"  Status: {'Reachable' if status_data['remote_reachable'] else 'Not reachable'}")
    print()
    print("Favorites:")
    print(f"  Local count: {status_data['favorites']}")
    print(f"  Last sync: {status_data['last_sync_timestamp'] or 'never'}")
    print()
    settings = status_data["scheduler"]["settings"]
    print("Sync settings:")
    print(f"  Enabled: {settings['enabled']}")
    print(f"  Interval: {settings['interval_hours']}h")
    print(f"  Wi-Fi only: {settings['only_wifi']}")

    return 0


def cmd_favorites_list(args: argparse.Namespace) -> int:
    """List local favorites."""
    config = load_config(args.config)
    agent = SyncAgent(config)

    try:
        favorites = agent.list_favorites()
    finally:
        agent.store.close()

    if args.json:
        print(json.dumps([vars(f) for f in favorites], indent=2))
        return 0

    if not favorites:
        print("No favorites yet.")
        return 0

    for fav in favorites:
        where = f" - {fav.direccion}" if fav.direccion else ""
        print(f"  {fav.poi_id}: {fav.nombre}{where}")
    print(f"\n{len(favorites)} favorite(s)")
    return 0


def cmd_favorites_add(args: argparse.Namespace) -> int:
    """Favorite a point of interest."""
    config = load_config(args.config)
    agent = SyncAgent(config)

    poi = {
        "id": args.poi_id,
        "nombre": args.nombre,
        "categoria": args.categoria,
        "direccion": args.direccion,
        "lat": args.lat,
        "lon": args.lon,
        "imagenes": [args.image] if args.image else [],
    }

    try:
        record = agent.add_favorite(poi)
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        agent.store.close()

    print(f"✓ Favorited {record.poi_id} ({record.nombre})")
    return 0


def cmd_favorites_remove(args: argparse.Namespace) -> int:
    """Unfavorite a point of interest."""
    config = load_config(args.config)
    agent = SyncAgent(config)

    try:
        removed = agent.remove_favorite(args.poi_id)
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        agent.store.close()

    if not removed:
        print(f"{args.poi_id} is not a favorite")
        return 1

    print(f"✓ Removed {args.poi_id}")
    return 0


async def cmd_dashboard(args: argparse.Namespace) -> int:
    """Start the agent together with the web dashboard."""
    config = load_config(args.config)

    try:
        from .dashboard import create_app

        import uvicorn
    except ImportError as e:
        print(f"Dashboard dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install poisync[dashboard]", file=sys.stderr)
        return 1

    host = args.host or config.dashboard.host
    port = args.port or config.dashboard.port

    agent = SyncAgent(config)
    await agent.start()

    print("Starting poisync Dashboard")
    print(f"Device: {config.node.name}")
    print(f"URL: http://{host}:{port}")

    app = create_app(agent)

    try:
        verbose = getattr(args, "verbose", False)
        config_uvicorn = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
        server = uvicorn.Server(config_uvicorn)
        await server.serve()
    finally:
        await agent.stop()

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="poisync",
        description="Offline-first sync of favorite points of interest",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run periodic sync until interrupted")
    run_parser.set_defaults(func=cmd_run)

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Sync once, right now")
    sync_parser.add_argument("--json", action="store_true", help="Output outcome as JSON")
    sync_parser.set_defaults(func=cmd_sync)

    # Status command
    status_parser = subparsers.add_parser("status", help="Show sync status")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")
    status_parser.set_defaults(func=cmd_status)

    # Favorites commands
    fav_parser = subparsers.add_parser("favorites", help="Manage local favorites")
    fav_subparsers = fav_parser.add_subparsers(dest="favorites_command", help="Favorites commands")

    fav_list = fav_subparsers.add_parser("list", help="List favorites")
    fav_list.add_argument("--json", action="store_true", help="Output as JSON")
    fav_list.set_defaults(func=cmd_favorites_list)

    fav_add = fav_subparsers.add_parser("add", help="Favorite a point of interest")
    fav_add.add_argument("poi_id", help="Point of interest id")
    fav_add.add_argument("nombre", nargs="?", default="", help="Display name")
    fav_add.add_argument("--categoria", default=None)
    fav_add.add_argument("--direccion", default=None)
    fav_add.add_argument("--lat", type=float, default=None)
    fav_add.add_argument("--lon", type=float, default=None)
    fav_add.add_argument("--image", default=None, help="Image URL")
    fav_add.set_defaults(func=cmd_favorites_add)

    fav_remove = fav_subparsers.add_parser("remove", help="Unfavorite a point of interest")
    fav_remove.add_argument("poi_id", help="Point of interest id")
    fav_remove.set_defaults(func=cmd_favorites_remove)

    # Dashboard command
    dashboard_parser = subparsers.add_parser("dashboard", help="Run the agent with the web dashboard")
    dashboard_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to run dashboard on (default: from config)",
    )
    dashboard_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind dashboard to (default: from config)",
    )
    dashboard_parser.set_defaults(func=cmd_dashboard)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.log_json)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "favorites" and not args.favorites_command:
        fav_parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        try:
            return asyncio.run(func(args))
        except KeyboardInterrupt:
            return 0
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
