# noqa
from src.services.analysis_pipeline import AnalysisPipeline
from src.services.export_service import ExportService
from src.services.publish_service import PublishService
from src.services.session_registry import SessionRegistry
from src.services.session_service import SessionOrchestrator
from src.services.turn_engine import RetryPolicy, TurnEngine

__all__ = [
    "AnalysisPipeline",
    "ExportService",
    "PublishService",
    "SessionRegistry",
    "SessionOrchestrator",
    "RetryPolicy",
    "TurnEngine",
]
