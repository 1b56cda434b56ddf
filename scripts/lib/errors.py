"""
Custom error classes for the CRM metrics engine.
Structured error handling with error codes across all modules.

The aggregation core never raises for business reasons (empty input,
zero denominators, malformed dates). These errors belong to the shell
around it: config loading, export loading and the analysis runner.

Hierarchy:
    DashboardError
    ├── DataError
    │   ├── ConfigError
    │   ├── SchemaValidationError
    │   └── DataFetchError
    └── AnalysisError
"""


class DashboardError(Exception):
    """Base exception for all CRM metrics errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- Data Errors ---

class DataError(DashboardError):
    """Base class for data loading errors."""
    pass


class ConfigError(DataError):
    """Configuration file or value error."""

    def __init__(self, message: str, config_path: str = None, key: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"config_path": config_path, "key": key},
        )


class SchemaValidationError(DataError):
    """A record in an export doesn't match the expected schema."""

    def __init__(self, message: str, collection: str = None, index: int = None):
        super().__init__(
            message, code="SCHEMA_INVALID",
            details={"collection": collection, "index": index},
        )


class DataFetchError(DataError):
    """Failed to read a records export from disk."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )


# --- Analysis Errors ---

class AnalysisError(DashboardError):
    """An analysis step failed."""

    def __init__(self, step_name: str, cause: Exception = None):
        msg = f"Analysis step '{step_name}' failed"
        if cause:
            msg += f": {cause}"
        super().__init__(
            msg, code="ANALYSIS_STEP_FAILED", details={"step": step_name},
        )
