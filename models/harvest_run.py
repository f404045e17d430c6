from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index
from models.base import Base, PipelineName, HarvestStatus


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class HarvestRun(Base):
    """
    Summary of one harvest invocation.

    Purpose:
    - Audit trail of all runs
    - Resume instructions survive the process (resume_offset)
    """
    __tablename__ = "harvest_runs"

    run_id = Column(String(36), primary_key=True)
    pipeline = Column(Enum(PipelineName, values_callable=_enum_values), nullable=False, index=True)
    status = Column(Enum(HarvestStatus, values_callable=_enum_values), nullable=False, index=True)

    calls_made = Column(Integer, default=0)
    call_budget = Column(Integer, default=0)
    records_processed = Column(Integer, default=0)
    records_written = Column(Integer, default=0)
    resume_offset = Column(Integer, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_harvest_run_pipeline_started", "pipeline", "started_at"),
    )
