"""
Error types and actionable error messages for registry cleanup.

Pipeline-fatal errors (``AuthError``, ``PaginationError``) abort only the
provider pipeline that raised them. ``DigestResolutionFailure`` is
recoverable. ``DeleteFailure`` describes a failed delete; it is attached to
the failure outcome instead of being raised.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    PAGINATION = "pagination"
    RESOURCE = "resource"
    NETWORK = "network"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class CleanupError(ActionableError):
    """Base class for registry cleanup errors"""

    fatal = False


class AuthError(CleanupError):
    """Credential exchange failed. Fatal for the provider pipeline."""

    fatal = True


class PaginationError(CleanupError):
    """A listing endpoint returned an error or malformed payload. Fatal for the provider pipeline."""

    fatal = True


class DigestResolutionFailure(CleanupError):
    """No content digest could be derived for a tag. The channel is skipped."""


class DeleteFailure(CleanupError):
    """A deletion channel returned non-success. Attached to the failed outcome, never raised."""


def create_auth_error(provider: str, repository: str, reason: str,
                      endpoint: Optional[str] = None) -> AuthError:
    """Create actionable error for credential exchange failures"""
    suggestions = []
    if provider == "dockerhub":
        suggestions.extend([
            "Verify DOCKERHUB_USERNAME and DOCKERHUB_PASSWORD are set correctly",
            "Use a Docker Hub access token with read/write/delete scope instead of the account password",
            f"Check that the account can access repository '{repository}'",
        ])
    elif provider == "ghcr":
        suggestions.extend([
            "Verify GHCR_TOKEN is set and has not expired",
            "Ensure the token has the read:packages and delete:packages scopes",
        ])
    suggestions.append("Check network connectivity to the authentication endpoint")

    details = {"provider": provider, "repository": repository, "reason": reason}
    if endpoint:
        details["endpoint"] = endpoint

    return AuthError(
        message=f"Failed to obtain {provider} credentials for {repository}",
        category=ErrorCategory.AUTHENTICATION,
        suggestions=suggestions,
        details=details,
    )


def create_pagination_error(url: str, reason: str, status_code: Optional[int] = None) -> PaginationError:
    """Create actionable error for listing failures"""
    suggestions = [
        "Verify the repository or package name is spelled correctly",
        "Check that the token can list the repository contents",
    ]
    if status_code in (401, 403):
        suggestions.insert(0, "The listing endpoint rejected the credentials; check token scopes")
    elif status_code == 404:
        suggestions.insert(0, "The repository or package does not exist under this owner")
    elif status_code == 0:
        suggestions.insert(0, "Check network connectivity to the registry API")

    return PaginationError(
        message=f"Listing failed: {reason}",
        category=ErrorCategory.PAGINATION,
        suggestions=suggestions,
        details={"url": url, "status_code": status_code},
    )


def create_digest_resolution_failure(tag: str, status_code: Optional[int] = None) -> DigestResolutionFailure:
    """Create error for a tag whose manifest digest could not be determined"""
    return DigestResolutionFailure(
        message=f"Could not determine Docker-Content-Digest for tag '{tag}'",
        category=ErrorCategory.RESOURCE,
        details={"tag": tag, "status_code": status_code},
    )


def create_config_error(field: str, value: Any, reason: str) -> ActionableError:
    """Create actionable error for configuration validation failures"""
    suggestions = [
        f"Check the '{field}' value in config.yaml or the matching environment variable",
        "Check config-example.yaml for the expected format",
    ]

    if "days" in field.lower() or "workers" in field.lower():
        suggestions.insert(1, "The value must be a non-negative integer")
    elif "format" in field.lower():
        suggestions.insert(1, "Supported log formats are 'text' and 'json'")

    return ActionableError(
        message=f"Configuration error: Invalid value for '{field}'",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details={"field": field, "value": value, "reason": reason},
    )


def create_delete_failure(resource: str, identifier: str, http_code: int) -> DeleteFailure:
    """Create the classification for a delete that did not return 200/202/204"""
    suggestions = []
    if http_code == 0:
        message = "Registry unreachable"
        suggestions.append("Check network connectivity to the registry; the delete is retried on the next run")
    elif http_code == 404:
        message = "DELETE returned not found (may already be deleted)"
    elif http_code in (401, 403):
        message = "DELETE was not authorized"
        suggestions.append("Check that the credentials are allowed to delete from this repository")
    elif http_code == 405:
        message = "DELETE not supported by the registry"
        suggestions.append("Docker Hub may reject manifest deletes; the tag delete is usually sufficient")
    else:
        message = "DELETE returned non-success"

    return DeleteFailure(
        message=message,
        category=ErrorCategory.NETWORK if http_code == 0 else ErrorCategory.RESOURCE,
        suggestions=suggestions,
        details={"resource": resource, "identifier": identifier, "status_code": http_code},
    )
