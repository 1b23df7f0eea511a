from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base, JobStatus


class ETLJob(Base):
    """
    Tracks one upload through the load phase.
    
    Purpose:
    - Progress polling while a load is running
    - Audit trail of past uploads (removed only by retention cleanup)
    
    Lifecycle:
    started -> processing -> completed | completed_with_errors,
    with started | processing -> failed on unrecoverable errors.
    """
    __tablename__ = "etl_job_logs"
    
    id = Column(String(64), primary_key=True)
    file_name = Column(String(500), nullable=False)
    
    status = Column(Enum(JobStatus), default=JobStatus.STARTED, nullable=False, index=True)
    
    # Counters, updated after every batch
    records_processed = Column(Integer, default=0, nullable=False)
    records_success = Column(Integer, default=0, nullable=False)
    records_error = Column(Integer, default=0, nullable=False)
    
    # Timing
    start_time = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    end_time = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    
    # Bounded sample of error messages
    error_messages = Column(JSONB, nullable=True)
    
    __table_args__ = (
        Index("idx_etl_job_status_start", "status", "start_time"),
    )
