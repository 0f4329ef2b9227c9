"""datascan - Sensitive data detection and endpoint risk scoring for API traffic."""

__version__ = "0.1.0"

from datascan.catalog import DataClass, DataClassCatalog, load_data_classes
from datascan.config import ScanConfig, load_config
from datascan.errors import DetectionError, SerializationConflict, TransientStoreError, ValidationError
from datascan.models import DataTag, RiskScore, RunSummary, Trace
from datascan.pipeline import PipelineDriver, detect_sensitive_data

__all__ = [
    "__version__",
    "DataClass",
    "DataClassCatalog",
    "load_data_classes",
    "ScanConfig",
    "load_config",
    "DetectionError",
    "SerializationConflict",
    "TransientStoreError",
    "ValidationError",
    "DataTag",
    "RiskScore",
    "RunSummary",
    "Trace",
    "PipelineDriver",
    "detect_sensitive_data",
]
