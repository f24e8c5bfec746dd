from .news import Source, Article, AcquisitionMode, SourceStatus
from .financial import FinancialObservation, ObservationType

__all__ = [
    "Source", "Article", "AcquisitionMode", "SourceStatus",
    "FinancialObservation", "ObservationType",
]
