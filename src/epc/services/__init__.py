"""Service layer module for the export pipeline client."""

from epc.services.api import ExportApiClient
from epc.services.download import DownloadResult, DownloadTrigger
from epc.services.pipeline import TwoPhasePipeline, run_job
from epc.services.push import LocalEventBus, PushChannel
from epc.services.state_machine import ExportStateMachine
from epc.services.submit import JobSubmitter
from epc.services.tracker import ProgressTracker

__all__ = [
    "ExportApiClient",
    "JobSubmitter",
    "ProgressTracker",
    "PushChannel",
    "LocalEventBus",
    "TwoPhasePipeline",
    "run_job",
    "ExportStateMachine",
    "DownloadTrigger",
    "DownloadResult",
]
