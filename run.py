# run.py
# Description: Headless entry point: loads settings, hydrates an empty store, syncs, then keeps the connectivity monitor running.
#
# Imports
import argparse
import asyncio
from pathlib import Path
import sys
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
# --- Add project root to sys.path ---
project_dir = Path(__file__).parent.resolve()
sys.path.insert(0, str(project_dir))
try:
    from workops_offline.config import load_settings
    from workops_offline.Logging_Config import configure_logging
    from workops_offline.runtime import build_runtime
    from workops_offline.Sync.sync_errors import SyncError
    from workops_offline.workops_api.exceptions import WorkOpsAPIError
except ModuleNotFoundError as e:
    print(f"ERROR: run.py: Failed to import from workops_offline package.")
    print(f"       Ensure '{project_dir}' is correct and contains 'workops_offline'.")
    print(f"       Original error: {e}")
    sys.exit(1)
#
#######################################################################################################################
#
# Functions:

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the workops offline sync engine without a UI.")
    parser.add_argument("--config", help="Path to config.toml (defaults to $WORKOPS_OFFLINE_CONFIG or ~/.config/...)")
    parser.add_argument("--once", action="store_true", help="Run a single sync cycle and exit.")
    return parser.parse_args(argv)


async def main(config_path=None, once=False) -> int:
    settings = load_settings(config_path, force_reload=True)
    configure_logging(settings)
    runtime = build_runtime(settings)
    try:
        await runtime.monitor.check_now()
        if runtime.pull_engine.is_database_empty() and runtime.monitor.is_online:
            try:
                await runtime.pull_engine.initial_pull_all(runtime.auth_gate)
            except (SyncError, WorkOpsAPIError) as e:
                logger.warning(f"Initial pull skipped: {e}")

        result = await runtime.orchestrator.trigger_sync()
        logger.info(f"Startup sync finished: {result.outcome.value} after {result.attempts} attempt(s)")
        if once:
            return 0 if result.ok else 1

        runtime.start()
        logger.info("Monitoring connectivity. Press Ctrl-C to stop.")
        await asyncio.Event().wait()
    finally:
        await runtime.close()
    return 0


def cli(argv=None):
    args = parse_args(argv)
    try:
        sys.exit(asyncio.run(main(args.config, args.once)))
    except KeyboardInterrupt:
        print("workops offline sync stopped.")


if __name__ == "__main__":
    cli()

#
# End of run.py
#######################################################################################################################
