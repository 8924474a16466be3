# services/__init__.py

from .job_service import JobRegistry
from .aggregation_service import AggregationService

__all__ = ['JobRegistry', 'AggregationService']
