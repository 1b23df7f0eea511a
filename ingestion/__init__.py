"""
ETL pipeline components for product spreadsheet ingestion.

Modules:
    runner: ETL orchestrator that coordinates extract, transform, and load phases
    job_tracker: Job log state machine
    scheduler: APScheduler integration for retention cleanup and integrity sweeps

Subpackages:
    extractors: Delimited-text parsing and column detection
    transformers: Cleaning, filling, outlier removal and features
    loaders: Repository interface and the batch loader

Architecture:
    1. Extract - Parse the upload into raw records, probe the delimiter
    2. Transform - Map columns and clean rows, collecting row errors
    3. Load - Upsert in batches, track the job, regenerate insights

Usage:
    from ingestion.runner import ETLRunner
    from ingestion.loaders.sqlalchemy_repository import SQLAlchemyProductRepository

Example:
    runner = ETLRunner(SQLAlchemyProductRepository(session))
    result = await runner.run(content, "amazon.csv")
    
    print(f"Loaded {result.load.records_loaded} records")
"""

__all__ = [
    "ETLRunner",
    "JobTracker",
    "CSVExtractor",
    "ProductTransformer",
    "ProductLoader",
]
