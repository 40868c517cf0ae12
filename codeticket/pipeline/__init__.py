"""
Pipeline package for the codeticket import job.

Re-exports the capability interfaces and the concrete reader, mapper,
processor, writer, steps and tasklet so wiring code can import from
`codeticket.pipeline` directly.
"""

from codeticket.pipeline.abstract import (
    Chunk,
    ChunkAck,
    ChunkSink,
    ExecutionLedger,
    RecordProcessor,
    RowMapper,
    RowSource,
    Step,
    StepResult,
    StepStatus,
    Tasklet,
)
from codeticket.pipeline.archiver import ArchiveFilesTasklet
from codeticket.pipeline.mapper import ImportRecordMapper
from codeticket.pipeline.processor import AdminFeeProcessor
from codeticket.pipeline.reader import DelimitedFileSource
from codeticket.pipeline.step import ChunkOrientedStep, TaskletStep
from codeticket.pipeline.writer import PostgresChunkWriter

__all__ = [
    # Abstracts
    "Chunk",
    "ChunkAck",
    "ChunkSink",
    "ExecutionLedger",
    "RecordProcessor",
    "RowMapper",
    "RowSource",
    "Step",
    "StepResult",
    "StepStatus",
    "Tasklet",
    # Concrete components
    "AdminFeeProcessor",
    "ArchiveFilesTasklet",
    "ChunkOrientedStep",
    "DelimitedFileSource",
    "ImportRecordMapper",
    "PostgresChunkWriter",
    "TaskletStep",
]
