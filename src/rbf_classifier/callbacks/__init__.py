"""Training callbacks for rbf_classifier."""

from rbf_classifier.callbacks.model_info import report_model_info
from rbf_classifier.callbacks.status import StatusRecord, ValidationStatus

__all__ = [
    "StatusRecord",
    "ValidationStatus",
    "report_model_info",
]
