"""Read-only SQL access through the tunnel."""

from .gateway import DatabaseConfig, SQLGateway
from .reachability import ProbeResult, probe
from .validator import FORBIDDEN_KEYWORDS, is_safe_select, strip_comments, validate_select

__all__ = [
    "SQLGateway",
    "DatabaseConfig",
    "ProbeResult",
    "probe",
    "is_safe_select",
    "validate_select",
    "strip_comments",
    "FORBIDDEN_KEYWORDS",
]
