"""
ShieldScan - safe security assessment of a single web origin
"""

__version__ = "0.1.0"

from .scanner.runner import ScanRunner
from .scanner.service import ScanService
from .util.types import ScanRequest, ScanResult, PlanTier

__all__ = ['ScanRunner', 'ScanService', 'ScanRequest', 'ScanResult', 'PlanTier']
