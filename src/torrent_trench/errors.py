"""
User-friendly error handling for torrent-trench
Provides clear, actionable error messages without Python stack traces
"""

import sys
from functools import wraps
from typing import List, Optional, Tuple, Union

from torrent_trench.logging import get_logger

logger = get_logger(__name__)


class TrenchError(Exception):
    """Base exception for all torrent-trench errors"""

    def __init__(self, code: str, message: str, details: Optional[dict] = None, fix: Optional[str] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.fix = fix
        super().__init__(self.format_error())

    def format_error(self) -> str:
        """Format error message for user display"""
        lines = [self.message]

        if self.details:
            for key, value in self.details.items():
                lines.append(f"  • {key}: {value}")

        if self.fix:
            lines.append(f"  • Fix: {self.fix}")

        return "\n".join(lines)


class ClientError(TrenchError):
    """Torrent client could not be queried"""

    def __init__(self, host: str, reason: str, code: str = "CLIENT-001",
                 message: str = "Torrent client request failed", fix: Optional[str] = None):
        self.host = host
        self.reason = reason
        super().__init__(
            code=code,
            message=message,
            details={
                "Client": host,
                "Error": reason
            },
            fix=fix or "Check the torrent client logs for more details"
        )


class AuthenticationError(ClientError):
    """Authentication with the torrent client failed"""

    def __init__(self, host: str, response_text: Optional[str] = None):
        super().__init__(
            host,
            response_text or "Login rejected",
            code="AUTH-001",
            message="Cannot log in to torrent client",
            fix="Check the username and password of this connection in torrent-trench.json"
        )


class ConnectionError(ClientError):
    """Cannot reach the torrent client"""

    def __init__(self, host: str, original_error: str):
        super().__init__(
            host,
            str(original_error),
            code="CONN-001",
            message="Cannot reach torrent client",
            fix="Check that the client is running and the connection url is correct"
        )


class ActionError(TrenchError):
    """An action could not be applied to a torrent"""

    def __init__(self, torrent_id: str, action: str, host: str, cause: Union[Exception, str]):
        self.torrent_id = torrent_id
        self.action = action
        self.host = host
        self.cause = cause
        super().__init__(
            code="ACT-001",
            message=f"Action '{action}' failed",
            details={
                "Torrent": torrent_id,
                "Client": host,
                "Error": f"{type(cause).__name__}: {cause}" if isinstance(cause, Exception) else cause
            },
            fix="Check the torrent client logs; the owning trench stays disabled until restart"
        )


class ConfigurationError(TrenchError):
    """Configuration file error"""

    def __init__(self, file_path: str, reason: str):
        super().__init__(
            code="CFG-001",
            message="Cannot load configuration",
            details={
                "File": file_path,
                "Problem": reason
            },
            fix="Check that the configuration file exists and has valid JSON or YAML syntax"
        )


class ValidationIssue:
    """A single problem found while validating the trench configuration"""

    # Issue codes
    INVALID = "invalid"
    DUPLICATE_NAME = "duplicate_name"
    UNKNOWN_FORK = "unknown_fork"
    SELF_FORK = "self_fork"
    NESTED_FORK = "nested_fork"
    INVALID_CRON = "invalid_cron"
    INVALID_REGEX = "invalid_regex"

    def __init__(self, path: Tuple, message: str, code: str = INVALID):
        self.path = tuple(path)
        self.message = message
        self.code = code

    def prefixed(self, *prefix) -> 'ValidationIssue':
        """Return a copy of this issue with its path nested under prefix"""
        return ValidationIssue(tuple(prefix) + self.path, self.message, self.code)

    def format_path(self) -> str:
        return '.'.join(str(part) for part in self.path) or '(root)'

    def __eq__(self, other):
        if not isinstance(other, ValidationIssue):
            return NotImplemented
        return (self.path, self.message, self.code) == (other.path, other.message, other.code)

    def __repr__(self) -> str:
        return f"<ValidationIssue {self.code} at {self.format_path()}: {self.message}>"


class ConfigValidationError(TrenchError):
    """Trench configuration failed validation"""

    def __init__(self, file_path: str, issues: List[ValidationIssue]):
        self.file_path = file_path
        self.issues = list(issues)
        details = {"File": file_path}
        for issue in self.issues:
            key = issue.format_path()
            # Several issues can share a path
            while key in details:
                key += ' '
            details[key] = issue.message

        super().__init__(
            code="CFG-002",
            message=f"Failed to validate trench config ({len(self.issues)} problem(s))",
            details=details,
            fix="Correct the listed entries in torrent-trench.json and restart"
        )

    def codes(self) -> List[str]:
        return [issue.code for issue in self.issues]


class LoggingSetupError(TrenchError):
    """Cannot setup file logging"""

    def __init__(self, log_path: str, reason: str, config_dir: Optional[str] = None):
        details = {
            "Log Path": log_path,
            "Problem": reason
        }
        if config_dir:
            details["TT_CONFIG_PATH"] = config_dir

        super().__init__(
            code="LOG-001",
            message="Cannot setup file logging",
            details=details,
            fix="Set LOG_FILE to a writable path (e.g., LOG_FILE=./logs/torrent-trench.log) or unset it to log to the console only"
        )


def handle_errors(func):
    """Decorator for user-friendly error handling"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TrenchError as e:
            # Our custom errors - display nicely
            logger.error(str(e))
            sys.exit(1)
        except KeyboardInterrupt:
            logger.info("Shutting down, interrupted by user")
            sys.exit(0)
        except Exception as e:
            # Unexpected error - show generic message
            logger.error("Unexpected error occurred")
            logger.error(f"  • Error: {type(e).__name__}: {str(e)}")
            logger.error("  • Fix: Please report this issue with the error details above")
            logger.debug("Full stack trace:", exc_info=True)
            sys.exit(1)
    return wrapper
