import argparse
import asyncio
import sys
from cortex.services.database import db
from cortex.services.logger import logger
from cortex.tools.alerts import AlertService
from cortex.workflows.pipeline import Pipeline

STAGES = ("collect", "briefing", "alerts", "reading-loop", "all")

async def run(stage: str):
    await db.init()
    pipeline = Pipeline(db)
    if stage in ("collect", "all"):
        report = await pipeline.run_collection()
        logger.info(f"Collection report: {report.model_dump()}")
    if stage in ("briefing", "all"):
        outcome = await pipeline.run_briefing()
        logger.info(f"Briefing outcome: {outcome.model_dump()}")
    if stage == "alerts":
        _, errors = await AlertService(db, pipeline.notifier).run()
        if errors:
            logger.warning(f"Alert errors: {errors}")
    if stage == "reading-loop":
        logger.info(f"Reading loop: {await pipeline.run_reading_loop()}")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a Cortex briefing stage once")
    parser.add_argument('stage', nargs='?', default='all', choices=STAGES,
                        help='Stage to run (default: collect then briefing)')
    return parser

def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(run(args.stage))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
