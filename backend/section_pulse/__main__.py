"""Section Pulse CLI entry point."""

import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from section_pulse import __version__
from section_pulse.config import get_settings
from section_pulse.exceptions import ConfigurationError, SectionPulseError
from section_pulse.runtime import PulseRuntime, build_runtime
from section_pulse.scheduler import start_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Section Pulse Configuration
# Connection secrets belong in .env (DATABASE__URL=...), not here.

database:
  url: sqlite:///data/section_pulse.db
  pool_size: 5
  max_overflow: 10

pulse:
  pause_after_minutes: 5
  end_after_minutes: 60
  timezone: UTC
  diagnose_on_reconcile: true
  diagnostics_lookback_days: 7
  recent_days_limit: 30

scheduler:
  reconcile_interval_minutes: 1
  max_workers: 4
  run_on_start: true

tenants:
  source: registry   # registry (admin_schemas table) or static
  static: []

api:
  host: 0.0.0.0
  port: 8000
"""


def _init_logfire(runtime: PulseRuntime, app=None) -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from section_pulse.observability import initialize_logfire

        initialize_logfire(runtime.settings, engine=runtime.database.engine, app=app)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _tenants(runtime: PulseRuntime, key: str | None):
    if key:
        return [runtime.directory.resolve(key)]
    return runtime.directory.list_active_tenant_schemas()


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory and configuration file."""
    data_dir = Path("data").resolve()

    try:
        data_dir.mkdir(exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Set DATABASE__URL in .env")
        print("2. Run 'python -m section_pulse ensure-schema' to create section_pulse tables")
        print("3. Run 'python -m section_pulse run' to start the reconciler\n")
        return 0

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Section Pulse Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}")
        print(f"Environment: {settings.environment}\n")

        print("Database:")
        print(f"  Dialect: {settings.database.dialect}")
        print(f"  Pool Size: {settings.database.pool_size} (+{settings.database.max_overflow})\n")

        print("Pulse:")
        print(f"  Pause After: {settings.pulse.pause_after_minutes} min")
        print(f"  End After: {settings.pulse.end_after_minutes} min")
        print(f"  Timezone: {settings.pulse.timezone}")
        print(f"  Diagnose On Reconcile: {settings.pulse.diagnose_on_reconcile}\n")

        print("Scheduler:")
        print(f"  Interval: {settings.scheduler.reconcile_interval_minutes} min")
        print(f"  Max Workers: {settings.scheduler.max_workers}\n")

        print("Tenants:")
        print(f"  Source: {settings.tenants.source}")
        if settings.tenants.source == "static":
            for tenant in settings.tenants.static:
                print(f"  • {tenant.key} -> {tenant.schema_name}")
        print()

        print(f"Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_ensure_schema(args: argparse.Namespace) -> int:
    """Create the section_pulse table in tenant schemas that lack it."""
    runtime = build_runtime(get_settings())
    try:
        created = 0
        for tenant in _tenants(runtime, args.tenant):
            if runtime.store.ensure_schema(tenant):
                created += 1
                print(f"  ✓ {tenant.key}: created section_pulse")
            else:
                print(f"  • {tenant.key}: already present")
        print(f"\n✓ {created} table(s) created\n")
        return 0
    except SectionPulseError as e:
        logger.error(f"Schema provisioning failed: {e}")
        print(f"\n❌ Schema provisioning failed: {e}\n")
        return 1
    finally:
        runtime.close()


def cmd_record(args: argparse.Namespace) -> int:
    """Apply one collection event manually (backfills, repairs)."""
    runtime = build_runtime(get_settings())
    try:
        tenant = runtime.directory.resolve(args.tenant)
        event_time = _parse_timestamp(args.at) or runtime.clock.now()
        pulse = runtime.writer.record_collection(tenant, args.society, event_time)

        print(f"\n✓ Recorded collection for society {args.society} at {event_time}\n")
        print(f"Status: {pulse.pulse_status.value}")
        print(f"First / Last: {pulse.first_collection_time} / {pulse.last_collection_time}")
        print(f"Total Collections: {pulse.total_collections}\n")
        return 0
    except (SectionPulseError, ValueError) as e:
        logger.error(f"Record failed: {e}")
        print(f"\n❌ Record failed: {e}\n")
        return 1
    finally:
        runtime.close()


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Run the reconciler once, for one tenant or the whole directory."""
    runtime = build_runtime(get_settings())
    _init_logfire(runtime)
    try:
        as_of = _parse_timestamp(args.as_of)

        if args.tenant:
            tenant = runtime.directory.resolve(args.tenant)
            result = runtime.reconciler.reconcile(tenant, as_of or runtime.clock.now())
            print(f"\n=== Reconcile {tenant.key} ===\n")
            print(f"Stale Ended: {result.stale_ended}")
            print(f"Healed: {result.healed}")
            print(f"Paused: {result.paused}")
            print(f"Ended: {result.ended}")
            print(f"Inactive Marked: {result.inactive_marked}")
            print(f"Conflicts Skipped: {result.skipped_conflicts}")
            print(f"Rows Failed: {result.rows_failed}")
            print(f"Issues Found: {result.issues_found}\n")
            return 0

        sweep = runtime.sweep.run_once(as_of)
        print("\n=== Reconcile Sweep ===\n")
        if sweep.directory_error:
            print(f"❌ Tenant discovery failed: {sweep.directory_error}\n")
            return 1
        for outcome in sweep.outcomes:
            if outcome.result is not None:
                r = outcome.result
                print(
                    f"  ✓ {outcome.tenant}: {r.stale_ended} stale, {r.paused} paused, "
                    f"{r.ended} ended, {r.inactive_marked} inactive"
                )
            else:
                print(f"  ✗ {outcome.tenant}: {outcome.status} {outcome.error or ''}")
        print(f"\n{sweep.succeeded}/{sweep.tenants_seen} tenants reconciled in {sweep.duration_seconds:.2f}s\n")
        return 0 if sweep.failed == 0 else 1

    except (SectionPulseError, ValueError) as e:
        logger.error(f"Reconcile failed: {e}", exc_info=True)
        print(f"\n❌ Reconcile failed: {e}\n")
        return 1
    finally:
        runtime.close()


def cmd_diagnose(args: argparse.Namespace) -> int:
    """Report data-quality issues without changing anything."""
    runtime = build_runtime(get_settings())
    try:
        as_of = _parse_timestamp(args.as_of) or runtime.clock.now()
        total = 0
        for tenant in _tenants(runtime, args.tenant):
            print(f"\n📂 {tenant.key}")
            if not runtime.store.has_table(tenant):
                print("   ⚠️ section_pulse table does not exist, skipping")
                continue
            issues = runtime.diagnostics.diagnose(tenant, as_of)
            if not issues:
                print("   ✅ No issues detected")
            for issue in issues:
                print(f"   ❌ pulse {issue.pulse_id} society {issue.society_id} {issue.pulse_date}: {issue.detail}")
            total += len(issues)
        print(f"\n🏁 Diagnosis complete: {total} issue(s)\n")
        return 0
    except (SectionPulseError, ValueError) as e:
        logger.error(f"Diagnosis failed: {e}")
        print(f"\n❌ Diagnosis failed: {e}\n")
        return 1
    finally:
        runtime.close()


def cmd_status(args: argparse.Namespace) -> int:
    """Display sections for one society or one day."""
    runtime = build_runtime(get_settings())
    try:
        tenant = runtime.directory.resolve(args.tenant)
        if args.society is not None:
            rows = runtime.store.recent_for_society(
                tenant, args.society, limit=runtime.settings.pulse.recent_days_limit
            )
            print(f"\n=== Society {args.society} ({tenant.key}) ===\n")
        else:
            day = date.fromisoformat(args.day) if args.day else runtime.clock.now().date()
            rows = runtime.store.list_for_day(tenant, day)
            print(f"\n=== {tenant.key} on {day} ===\n")

        if not rows:
            print("  (None)\n")
            return 0
        for p in rows:
            print(
                f"  {p.pulse_date}  society {p.society_id:<5} {p.pulse_status.value:<8} "
                f"collections={p.total_collections:<4} last={p.last_collection_time or '-'} "
                f"end={p.section_end_time or '-'} inactive_days={p.inactive_days}"
            )
        print()
        return 0
    except (SectionPulseError, ValueError) as e:
        logger.error(f"Failed to read status: {e}")
        print(f"\n❌ Failed to read status: {e}\n")
        return 1
    finally:
        runtime.close()


def cmd_run(args: argparse.Namespace) -> int:
    """Start the reconciliation scheduler."""
    try:
        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()
        runtime = build_runtime(settings)
        _init_logfire(runtime)

        print("\n=== Section Pulse Reconciler ===\n")
        print(f"Version: {__version__}")
        print(f"Interval: every {settings.scheduler.reconcile_interval_minutes} min")
        print(f"Tenants: {settings.tenants.source}\n")

        if args.once:
            runtime.sweep.run_once()
            print("\nSweep complete.\n")
            return 0

        print("Starting scheduler...\n")
        start_scheduler(runtime.sweep, settings.scheduler)
        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start reconciler: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the read API."""
    import uvicorn

    from section_pulse.api import create_app

    settings = get_settings()
    runtime = build_runtime(settings)
    app = create_app(runtime)
    _init_logfire(runtime, app=app)

    try:
        uvicorn.run(
            app,
            host=args.host or settings.api.host,
            port=args.port or settings.api.port,
            log_level="debug" if args.debug else "info",
        )
        return 0
    finally:
        runtime.close()


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Section Pulse: collection section tracking for dairy societies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Section Pulse {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser("init", help="Initialize data directory and configuration file")
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser("config", help="Display merged configuration")
    parser_config.set_defaults(func=cmd_config)

    parser_schema = subparsers.add_parser(
        "ensure-schema",
        help="Create the section_pulse table in tenant schemas that lack it",
    )
    parser_schema.add_argument("--tenant", help="Only this tenant key")
    parser_schema.set_defaults(func=cmd_ensure_schema)

    parser_record = subparsers.add_parser("record", help="Apply one collection event manually")
    parser_record.add_argument("--tenant", required=True, help="Tenant key")
    parser_record.add_argument("--society", required=True, type=int, help="Society id")
    parser_record.add_argument("--at", help="Collection timestamp (ISO 8601), default now")
    parser_record.set_defaults(func=cmd_record)

    parser_reconcile = subparsers.add_parser("reconcile", help="Run the reconciler once")
    parser_reconcile.add_argument("--tenant", help="Only this tenant key")
    parser_reconcile.add_argument("--as-of", help="Evaluate as of this timestamp (ISO 8601)")
    parser_reconcile.set_defaults(func=cmd_reconcile)

    parser_diagnose = subparsers.add_parser("diagnose", help="Report data-quality issues")
    parser_diagnose.add_argument("--tenant", help="Only this tenant key")
    parser_diagnose.add_argument("--as-of", help="Evaluate as of this timestamp (ISO 8601)")
    parser_diagnose.set_defaults(func=cmd_diagnose)

    parser_status = subparsers.add_parser("status", help="Show sections for a society or a day")
    parser_status.add_argument("--tenant", required=True, help="Tenant key")
    parser_status.add_argument("--society", type=int, help="Society id (recent history)")
    parser_status.add_argument("--day", help="Day (YYYY-MM-DD), default today")
    parser_status.set_defaults(func=cmd_status)

    parser_run = subparsers.add_parser("run", help="Start the reconciliation scheduler")
    parser_run.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser_run.add_argument("--once", action="store_true", help="Run one sweep then exit")
    parser_run.set_defaults(func=cmd_run)

    parser_serve = subparsers.add_parser("serve", help="Serve the read API")
    parser_serve.add_argument("--host", help="Bind host")
    parser_serve.add_argument("--port", type=int, help="Bind port")
    parser_serve.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except ConfigurationError as e:
        print(f"\n❌ Configuration Error: {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
