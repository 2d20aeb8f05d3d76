"""
Colored logging utilities for the OAuth session client.

This module provides colored, structured log output with component
identification and timestamps so OAuth message flows are easy to follow,
plus a null logger used by default so the library stays silent unless a
caller opts in.
"""

import logging
from datetime import datetime
from typing import Dict, Any, Optional
from enum import Enum

from colorama import Fore, Style, init

init(autoreset=True)


class ComponentType(str, Enum):
    """OAuth system component types."""
    CLIENT = "CLIENT"
    AUTH_SERVICE = "AUTH-SERVICE"
    SESSION = "SESSION"
    USER_BROWSER = "USER-BROWSER"
    SYSTEM = "SYSTEM"


class MessageType(str, Enum):
    """OAuth message types for logging."""
    REQUEST = "REQUEST"
    RESPONSE = "RESPONSE"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    PKCE_GENERATION = "PKCE-GENERATION"
    TOKEN_EXCHANGE = "TOKEN-EXCHANGE"
    TOKEN_REFRESH = "TOKEN-REFRESH"
    TOKEN_VALIDATION = "TOKEN-VALIDATION"
    TOKEN_REVOCATION = "TOKEN-REVOCATION"
    REDIRECT = "REDIRECT"


class OAuthLogger:
    """
    Colored logger for OAuth message flows.

    Formats each event as a header line (timestamp, source → destination),
    a message type and the sanitized key/value payload, and writes it to
    the ``oauth.<component>`` standard library logger.
    """

    # Diagnostic keys that only look sensitive by substring
    PLAIN_KEYS = frozenset({'error_code', 'status_code', 'error_type'})
    PLAIN_SUFFIXES = ('_configured', '_present', '_issued')

    def __init__(self, component_name: str, level: int = logging.INFO):
        """
        Initialize OAuth logger for a specific component.

        Args:
            component_name: Name of the component (CLIENT, SESSION, etc.)
            level: Minimum level emitted by the underlying logger
        """
        self.component_name = component_name.upper()
        self.colors = self._get_component_colors()

        self.logger = logging.getLogger(f"oauth.{component_name.lower()}")
        self.logger.setLevel(level)

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        handler = logging.StreamHandler()
        handler.setLevel(level)
        self.logger.addHandler(handler)
        self.logger.propagate = False

    def _get_component_colors(self) -> Dict[str, str]:
        """Get color scheme for different components and message types."""
        return {
            'CLIENT': Fore.BLUE + Style.BRIGHT,
            'AUTH-SERVICE': Fore.GREEN + Style.BRIGHT,
            'SESSION': Fore.YELLOW + Style.BRIGHT,
            'USER-BROWSER': Fore.CYAN + Style.BRIGHT,
            'SYSTEM': Fore.MAGENTA + Style.BRIGHT,
            'ERROR': Fore.RED + Style.BRIGHT,
            'WARNING': Fore.YELLOW,
            'SUCCESS': Fore.GREEN + Style.BRIGHT,
            'INFO': Fore.CYAN,
            'HEADER': Fore.WHITE + Style.BRIGHT,
            'SEPARATOR': Fore.WHITE + Style.DIM,
            'RESET': Style.RESET_ALL
        }

    def _format_timestamp(self) -> str:
        """Format current timestamp for log messages."""
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

    def _sanitize_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sanitize sensitive data for logging.

        Redacts secrets and truncates tokens, codes and verifiers. Error
        codes and boolean flags such as ``client_secret_configured`` are
        left as they are.
        """
        sanitized = {}
        for key, value in data.items():
            key_lower = key.lower()

            if key_lower in self.PLAIN_KEYS or key_lower.endswith(self.PLAIN_SUFFIXES):
                sanitized[key] = value
            elif any(sensitive in key_lower for sensitive in ['password', 'secret', 'authorization', 'cookie']):
                sanitized[key] = '[REDACTED]'
            elif any(token in key_lower for token in ['token', 'code', 'challenge', 'verifier', 'state']):
                if isinstance(value, str) and len(value) > 10:
                    sanitized[key] = f"{value[:10]}..."
                else:
                    sanitized[key] = value
            else:
                sanitized[key] = value

        return sanitized

    def _emit(self, level: int, lines: list) -> None:
        self.logger.log(level, "\n".join(lines))

    def log_oauth_message(self,
                          source: str,
                          destination: str,
                          message_type: str,
                          data: Dict[str, Any],
                          success: bool = True,
                          level: int = logging.INFO):
        """
        Log OAuth message with color coding and formatting.

        Args:
            source: Source component name
            destination: Destination component name
            message_type: Type of message (REQUEST, RESPONSE, etc.)
            data: Message data dictionary
            success: Whether the operation was successful
            level: Logging level for the record
        """
        if not self.logger.isEnabledFor(level):
            return

        timestamp = self._format_timestamp()
        source_color = self.colors.get(source.upper(), self.colors['INFO'])
        dest_color = self.colors.get(destination.upper(), self.colors['INFO'])

        if not success:
            msg_color = self.colors['ERROR']
        elif message_type in ['RESPONSE', 'SUCCESS']:
            msg_color = self.colors['SUCCESS']
        else:
            msg_color = self.colors['INFO']

        lines = [
            f"{self.colors['HEADER']}[{timestamp}] {source_color}{source}{self.colors['RESET']} → {dest_color}{destination}{self.colors['RESET']}",
            f"{msg_color}{message_type}:{self.colors['RESET']}",
        ]
        for key, value in self._sanitize_data(data).items():
            lines.append(f"  {self.colors['INFO']}{key}:{self.colors['RESET']} {value}")
        lines.append(f"{self.colors['SEPARATOR']}{'-' * 60}{self.colors['RESET']}")

        self._emit(level, lines)

    def log_pkce_operation(self,
                           operation: str,
                           details: Dict[str, Any],
                           success: bool = True):
        """
        Log PKCE-specific operations.

        Args:
            operation: PKCE operation (generation, etc.)
            details: Operation details
            success: Whether operation was successful
        """
        self.log_oauth_message(
            source=self.component_name,
            destination=self.component_name,
            message_type=f"PKCE-{operation.upper()}",
            data=details,
            success=success,
            level=logging.DEBUG
        )

    def log_token_operation(self,
                            operation: str,
                            details: Dict[str, Any],
                            success: bool = True):
        """
        Log token-related operations.

        Args:
            operation: Token operation (exchange, refresh, validation, etc.)
            details: Operation details
            success: Whether operation was successful
        """
        self.log_oauth_message(
            source=self.component_name,
            destination=ComponentType.AUTH_SERVICE.value,
            message_type=f"TOKEN-{operation.upper()}",
            data=details,
            success=success,
            level=logging.INFO if success else logging.WARNING
        )

    def log_http_request(self,
                         method: str,
                         url: str,
                         params: Optional[Dict[str, Any]] = None):
        """
        Log an outgoing HTTP request to the authorization service.

        Args:
            method: HTTP method
            url: Request URL
            params: Body or query parameters (sanitized before output)
        """
        request_data = {"method": method, "url": url}
        if params:
            request_data.update(params)

        self.log_oauth_message(
            source=self.component_name,
            destination=ComponentType.AUTH_SERVICE.value,
            message_type=MessageType.REQUEST.value,
            data=request_data,
            level=logging.DEBUG
        )

    def log_error(self,
                  error_type: str,
                  message: str,
                  details: Optional[Dict[str, Any]] = None):
        """
        Log error messages with context.

        Args:
            error_type: Type of error
            message: Error message
            details: Additional error context
        """
        error_data = {"error_type": error_type, "message": message}
        if details:
            error_data.update(details)

        self.log_oauth_message(
            source=self.component_name,
            destination="ERROR-HANDLER",
            message_type=MessageType.ERROR.value,
            data=error_data,
            success=False,
            level=logging.ERROR
        )

    def log_warning(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Log a recoverable problem, e.g. a failed refresh or best-effort revoke.

        Args:
            message: Warning message
            details: Additional context
        """
        warning_data = {"message": message}
        if details:
            warning_data.update(details)

        self.log_oauth_message(
            source=self.component_name,
            destination=self.component_name,
            message_type=MessageType.WARNING.value,
            data=warning_data,
            success=False,
            level=logging.WARNING
        )

    def log_info(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Log informational messages.

        Args:
            message: Info message
            details: Additional context
        """
        if not self.logger.isEnabledFor(logging.INFO):
            return

        lines = [f"{self.colors['INFO']}[{self._format_timestamp()}] {self.component_name}: {message}{self.colors['RESET']}"]
        if details:
            for key, value in self._sanitize_data(details).items():
                lines.append(f"  {key}: {value}")
        self._emit(logging.INFO, lines)

    def log_startup(self, port: int, additional_info: Optional[Dict[str, Any]] = None):
        """
        Log component startup information.

        Args:
            port: Port number the component is running on
            additional_info: Additional startup information
        """
        lines = [f"{self.colors['SUCCESS']}🚀 {self.component_name} started on port {port}{self.colors['RESET']}"]
        if additional_info:
            for key, value in self._sanitize_data(additional_info).items():
                lines.append(f"   {key}: {value}")
        lines.append(f"{self.colors['SEPARATOR']}{'-' * 60}{self.colors['RESET']}")
        self._emit(logging.INFO, lines)


class NullOAuthLogger(OAuthLogger):
    """
    Logger that discards everything.

    Default for the client and the session layer, so tokens and user data
    never reach an output the caller did not configure.
    """

    def __init__(self, component_name: str = "null"):
        self.component_name = component_name.upper()
        self.colors = self._get_component_colors()
        self.logger = logging.getLogger(f"oauth.null.{component_name.lower()}")
        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())
        self.logger.propagate = False
        self.logger.disabled = True

    def _emit(self, level: int, lines: list) -> None:
        pass


def create_logger(component_name: str, enabled: bool = True,
                  level: int = logging.INFO) -> OAuthLogger:
    """
    Factory function to create OAuth logger instances.

    Args:
        component_name: Name of the component
        enabled: Return a NullOAuthLogger when False
        level: Minimum level emitted

    Returns:
        OAuthLogger: Configured logger instance
    """
    if not enabled:
        return NullOAuthLogger(component_name)
    return OAuthLogger(component_name, level=level)
