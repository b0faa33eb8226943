from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from fulfillment.aggregator import ReportAggregator, ReportRunResult, ReportThresholds
from fulfillment.backfill import BackfillSynthesizer, OrderPatterns
from fulfillment.catalog import VendorCatalog, default_catalog, load_catalog
from fulfillment.config import merge_config
from fulfillment.errors import ConfigValidationError, DataLoadError, SimulationError, StoreError
from fulfillment.events import EventLog, ReportTrigger
from fulfillment.live_driver import LiveOrderDriver, LiveSettings
from fulfillment.randomness import SeededRandom
from fulfillment.selector import WeightedVendorSelector
from fulfillment.state_machine import OrderStateMachine, TransitionPolicy
from fulfillment.store import DataStore, InMemoryDataStore


BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"
DEFAULT_CONFIG_PATH = BASE_DIR / "config.json"
LOG_FILE = BASE_DIR / "simulation.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Set by run_continuous_service
logger: logging.Logger | None = None


def setup_logging(log_file: Path | None = LOG_FILE, level: int = logging.INFO) -> logging.Logger:
    """Attach rotating-file and stdout handlers to the ``simulation`` logger.

    Every module logs through a child of ``simulation`` (``simulation.db``,
    ``simulation.reports``, ...), so one configuration covers the whole tree.
    Passing ``log_file=None`` logs to stdout only. Calling this twice is a no-op.
    """
    root = logging.getLogger("simulation")
    root.setLevel(level)
    if root.handlers:
        return root

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
        )
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    return root


def parse_start_time(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values and a trailing 'Z' mean UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid time format '{value}': {e}") from e
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_end_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValueError(f"Invalid end date '{value}': {e}") from e


def load_config(path: Path | None) -> dict[str, Any]:
    """Read the optional JSON config file; a missing file means no overrides."""
    if path is None or not path.exists():
        return {}
    try:
        loaded = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"Invalid JSON in config file {path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a JSON object")
    return loaded


def resolve_value(cli_value: Any, cfg_section: dict[str, Any], key: str, fallback: Any) -> Any:
    """CLI flag wins, then the config file section, then the fallback."""
    if cli_value is not None:
        return cli_value
    return cfg_section.get(key, fallback)


@dataclass
class Components:
    config: dict[str, Any]
    catalog: VendorCatalog
    store: DataStore
    event_log: EventLog
    aggregator: ReportAggregator


def open_store(kind: str) -> DataStore:
    if kind == "memory":
        return InMemoryDataStore()

    from fulfillment.db_manager import SqlAlchemyDataStore, create_tables, get_engine, test_connection

    engine = get_engine()
    if not test_connection(engine):
        raise StoreError("Database connection failed. Check DATABASE_URL or DB_* settings in .env")
    create_tables(engine)
    return SqlAlchemyDataStore(engine)


def build_components(args: argparse.Namespace, file_config: dict[str, Any]) -> Components:
    """Merge config, load the catalog and open the store.

    Raises:
        ConfigValidationError, DataLoadError, StoreError
    """
    config = merge_config(file_config.get("engine", {}))
    vendors_path = resolve_value(args.vendors, file_config, "vendors", None)
    catalog = load_catalog(Path(vendors_path)) if vendors_path else default_catalog()
    store_kind = resolve_value(args.store, file_config, "store", "memory")
    store = open_store(store_kind)
    events_dir = Path(config["events_dir"])
    if not events_dir.is_absolute():
        events_dir = BASE_DIR / events_dir
    return Components(
        config=config,
        catalog=catalog,
        store=store,
        event_log=EventLog(events_dir),
        aggregator=ReportAggregator(catalog, ReportThresholds.from_config(config)),
    )


def build_driver(components: Components, seed: int | None) -> LiveOrderDriver:
    rng = SeededRandom(seed)
    machine = OrderStateMachine(
        components.catalog,
        rng,
        TransitionPolicy.from_config(components.config),
        notify=components.event_log.record_status_change,
    )
    return LiveOrderDriver(
        components.catalog,
        components.store,
        rng,
        machine,
        LiveSettings.from_config(components.config),
        WeightedVendorSelector(components.catalog),
    )


def print_summary(result: ReportRunResult) -> None:
    print(json.dumps(result.summary.to_dict(), indent=2))


def run_backfill(
    components: Components,
    days: int,
    seed: int | None,
    end_date: date,
    report_time: datetime | None = None,
) -> ReportRunResult:
    """Backfill the store, then regenerate reports as of ``report_time`` (default: now)."""
    synthesizer = BackfillSynthesizer(
        components.catalog,
        SeededRandom(seed),
        OrderPatterns.from_config(components.config),
    )
    summary = synthesizer.backfill(components.store, days, end_date, components.config["batch_size"])
    print(json.dumps(summary.to_dict(), indent=2))
    result = components.aggregator.run(components.store, report_time or datetime.now(timezone.utc))
    print(f"Reports generated for {result.vendor_reports} vendors.")
    return result


def run_simulation(
    components: Components,
    steps: int,
    seed: int | None,
    start_time: datetime | None,
    step_minutes: float,
    report_every: int,
) -> None:
    """Run a fixed number of live steps on a simulated clock."""
    if steps <= 0:
        raise ConfigValidationError(f"steps must be positive, got {steps}")
    if report_every <= 0:
        raise ConfigValidationError(f"report_every must be positive, got {report_every}")

    driver = build_driver(components, seed)
    trigger = ReportTrigger(lambda now: components.aggregator.run(components.store, now))
    components.store.subscribe(trigger)

    now = start_time or datetime.now(timezone.utc)
    actions: dict[str, int] = {}
    print(f"Running {steps} live steps...")
    for i in range(steps):
        result = driver.step(now)
        actions[result.action] = actions.get(result.action, 0) + 1
        if (i + 1) % report_every == 0:
            trigger.flush(now)
            print(f"  Completed {i + 1} steps")
        now += timedelta(minutes=step_minutes)

    last = trigger.flush(now)
    components.event_log.close()
    print("Simulation complete. Actions:")
    for action, count in sorted(actions.items()):
        print(f"  {action}: {count}")
    if last is not None:
        print_summary(last)


def run_continuous_service(
    components: Components,
    tick_interval: float,
    seed: int | None,
    api_host: str = "127.0.0.1",
    api_port: int = 8010,
    api_enabled: bool = True,
) -> None:
    """Run live steps continuously until SIGINT/SIGTERM, regenerating reports as orders change."""
    global logger
    logger = setup_logging()

    logger.info("=" * 60)
    logger.info("Starting Vendor Fulfillment Simulation Service")
    logger.info("=" * 60)

    driver = build_driver(components, seed)
    trigger = ReportTrigger(lambda now: components.aggregator.run(components.store, now))
    components.store.subscribe(trigger)

    running = True

    # Set up graceful shutdown
    def handle_shutdown(signum, frame):
        nonlocal running
        logger.info(f"Received signal {signum}. Initiating graceful shutdown...")
        running = False

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    # Start read-only API in daemon thread
    if api_enabled:
        import threading

        import uvicorn

        from fulfillment.api import create_app

        app = create_app(components.store, components.catalog)
        thread = threading.Thread(
            target=uvicorn.run,
            kwargs={"app": app, "host": api_host, "port": api_port},
            daemon=True,
        )
        thread.start()
        logger.info(f"  API: http://{api_host}:{api_port} (GET /health, /vendors, /orders, /reports, /dashboard)")

    logger.info("Service configuration:")
    logger.info(f"  Tick interval: {tick_interval} seconds")
    logger.info(f"  Vendors: {len(components.catalog)}")
    logger.info(f"  Events: JSONL (date-partitioned in {components.event_log.events_dir})")
    logger.info("Service is running. Press Ctrl+C to stop.")

    steps = 0
    while running:
        tick_start = time.time()
        now = datetime.now(timezone.utc)
        try:
            result = driver.step(now)
            trigger.flush(now)
        except StoreError as e:
            logger.error(f"Store error during step {steps + 1}: {e}", exc_info=True)
            # Retry on the next tick; pending report changes are kept
            time.sleep(tick_interval)
            continue
        steps += 1
        logger.debug(f"Step {steps}: {result.action} {result.order_id or ''}")
        if steps % 100 == 0:
            logger.info(f"Step {steps:,} | Sim time: {now.strftime('%Y-%m-%d %H:%M')}")

        # Sleep for the configured interval
        tick_duration = time.time() - tick_start
        sleep_time = max(0, tick_interval - tick_duration)
        if sleep_time > 0:
            time.sleep(sleep_time)

    logger.info("Shutting down...")
    components.event_log.close()
    logger.info(f"Service stopped after {steps:,} steps.")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Vendor fulfillment simulator CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  generate-vendors Generate a vendor catalog JSON file
  backfill         Synthesize historical orders, then generate reports
  simulate         Run a fixed number of live order steps
  report           Regenerate vendor reports and the dashboard summary
  run-service      Run live steps continuously with the read-only API

Examples:
  python main.py generate-vendors --count 8 --seed 42
  python main.py --store sql backfill --days 21 --seed 42
  python main.py simulate --steps 500 --seed 42
  python main.py --store sql run-service --tick-interval 2
        """
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config file (default: ./config.json if present).",
    )
    parser.add_argument("--vendors", type=str, default=None, help="Vendor catalog JSON (default: built-in vendors).")
    parser.add_argument(
        "--store",
        choices=["memory", "sql"],
        default=None,
        help="Data store backend (default: memory).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate-vendors", help="Generate a vendor catalog JSON file")
    gen.add_argument("--count", type=int, default=None, help="Number of vendors to generate.")
    gen.add_argument("--seed", type=int, default=None, help="Seed for the generator.")
    gen.add_argument("--out", type=Path, default=None, help="Output path (default: data/vendors.json).")

    bf = sub.add_parser("backfill", help="Synthesize historical orders")
    bf.add_argument("--days", type=int, default=None, help="Days of history (default: 21).")
    bf.add_argument("--seed", type=int, default=None, help="Backfill RNG seed.")
    bf.add_argument("--end-date", type=str, default=None, help="First day NOT backfilled (default: today, UTC).")

    sim = sub.add_parser("simulate", help="Run live order steps")
    sim.add_argument("--steps", type=int, default=None, help="Number of live steps to run.")
    sim.add_argument("--seed", type=int, default=None, help="Simulation RNG seed.")
    sim.add_argument(
        "--start-time",
        type=str,
        default=None,
        help="ISO-8601 simulated start time (e.g., 2026-02-02T08:00:00Z).",
    )
    sim.add_argument("--step-minutes", type=float, default=None, help="Simulated minutes per step (default: 60).")
    sim.add_argument("--backfill-days", type=int, default=None, help="Backfill this many days first (default: 0).")

    sub.add_parser("report", help="Regenerate reports and print the dashboard summary")

    svc = sub.add_parser("run-service", help="Run as a continuous service")
    svc.add_argument(
        "--tick-interval",
        type=float,
        default=None,
        help="Seconds between live steps (default: 5.0).",
    )
    svc.add_argument("--seed", type=int, default=None, help="Simulation RNG seed.")
    svc.add_argument("--no-api", action="store_true", help="Do not start the read-only API.")

    args = parser.parse_args()
    config_path = args.config or (DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None)
    try:
        file_config = load_config(config_path)
    except ConfigValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "generate-vendors":
        from fulfillment.generate_vendors import generate_vendors, write_vendors

        section = file_config.get("generate-vendors", {})
        count = resolve_value(args.count, section, "count", 8)
        seed = resolve_value(args.seed, section, "seed", 42)
        out = Path(resolve_value(args.out, section, "out", DATA_DIR / "vendors.json"))
        write_vendors(generate_vendors(count, seed), out)
        print(f"Wrote {count} vendors to {out}")
        return 0

    setup_logging()
    try:
        components = build_components(args, file_config)
    except DataLoadError as e:
        print(f"Error loading vendors: {e}", file=sys.stderr)
        print("Hint: Run 'python main.py generate-vendors' to create a catalog.", file=sys.stderr)
        return 1
    except ConfigValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except (StoreError, ValueError) as e:
        print(f"Store error: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "backfill":
            section = file_config.get("backfill", {})
            days = resolve_value(args.days, section, "days", components.config["backfill_days"])
            seed = resolve_value(args.seed, section, "seed", 42)
            end_raw = resolve_value(args.end_date, section, "end_date", None)
            try:
                end_date = parse_end_date(end_raw) if end_raw else datetime.now(timezone.utc).date()
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            run_backfill(components, days, seed, end_date)
            return 0

        if args.command == "simulate":
            section = file_config.get("simulate", {})
            steps = resolve_value(args.steps, section, "steps", 100)
            seed = resolve_value(args.seed, section, "seed", 42)
            start_raw = resolve_value(args.start_time, section, "start_time", None)
            step_minutes = resolve_value(args.step_minutes, section, "step_minutes", 60.0)
            backfill_days = resolve_value(args.backfill_days, section, "backfill_days", 0)
            try:
                start_time = parse_start_time(start_raw) if start_raw else None
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            if backfill_days:
                end_date = (start_time or datetime.now(timezone.utc)).date()
                run_backfill(components, backfill_days, seed, end_date, report_time=start_time)
            run_simulation(
                components,
                steps=steps,
                seed=seed,
                start_time=start_time,
                step_minutes=step_minutes,
                report_every=section.get("report_every", 10),
            )
            return 0

        if args.command == "report":
            print_summary(components.aggregator.run(components.store, datetime.now(timezone.utc)))
            return 0

        if args.command == "run-service":
            section = file_config.get("run-service", {})
            run_continuous_service(
                components,
                tick_interval=resolve_value(args.tick_interval, section, "tick_interval", 5.0),
                seed=resolve_value(args.seed, section, "seed", None),
                api_host=section.get("api_host", "127.0.0.1"),
                api_port=section.get("api_port", 8010),
                api_enabled=not args.no_api and section.get("api_enabled", True),
            )
            return 0
    except SimulationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
