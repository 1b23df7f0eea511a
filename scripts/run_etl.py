"""
Script to run the ETL pipeline over a local file or a URL
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import async_session_maker, dispose_engine
from core.exceptions import ETLException
from core.logging import setup_logging
from ingestion.loaders.memory_repository import InMemoryProductRepository
from ingestion.loaders.sqlalchemy_repository import SQLAlchemyProductRepository
from ingestion.runner import ETLRunner
from schemas.etl import LoadOptions, PipelineResult, TransformOptions

logger = logging.getLogger(__name__)


def build_runner(repository, args) -> ETLRunner:
    load_options = LoadOptions(generate_insights=not args.no_insights)
    if args.batch_size:
        load_options.batch_size = args.batch_size
    return ETLRunner(
        repository,
        transform_options=TransformOptions(remove_outliers=not args.no_outliers),
        load_options=load_options,
    )


async def run_source(runner: ETLRunner, source: str) -> PipelineResult:
    if source.startswith(("http://", "https://")):
        return await runner.run_url(source)
    return await runner.run_file(source)


def report(result: PipelineResult):
    load = result.load
    logger.info(
        f"ETL completed for {result.file_name}: "
        f"Extracted={result.records_processed}, "
        f"Loaded={load.records_loaded}, "
        f"Skipped={load.records_skipped}, "
        f"Failed={load.records_error}, "
        f"Duplicates={result.duplicates_removed}, "
        f"Job={load.job_id}"
    )
    logger.info(result.quality.summary)
    for message in load.errors[:10]:
        logger.warning(message)


async def run_etl(args) -> bool:
    """Run ETL for one source; returns LoadResult.success"""
    if args.dry_run:
        logger.info("Dry run: loading into an in-memory store")
        result = await run_source(build_runner(InMemoryProductRepository(), args), args.source)
        report(result)
        return result.load.success

    try:
        async with async_session_maker() as session:
            runner = build_runner(SQLAlchemyProductRepository(session), args)
            result = await run_source(runner, args.source)
            report(result)
            return result.load.success
    finally:
        await dispose_engine()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Load a product CSV export into the database")
    parser.add_argument("source", help="Path or http(s) URL of the CSV file")
    parser.add_argument("--batch-size", type=int, help="Records per batch (default: ETL_BATCH_SIZE)")
    parser.add_argument("--no-outliers", action="store_true", help="Keep statistical outliers")
    parser.add_argument("--no-insights", action="store_true", help="Skip category insight regeneration")
    parser.add_argument("--dry-run", action="store_true", help="Run against an in-memory store")
    parser.add_argument("--log-level", help="Override LOG_LEVEL (e.g. DEBUG to see rejected rows)")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    setup_logging(args.log_level)
    try:
        ok = asyncio.run(run_etl(args))
    except ETLException as e:
        logger.error(f"ETL pipeline error: {str(e)}")
        sys.exit(1)
    sys.exit(0 if ok else 2)
