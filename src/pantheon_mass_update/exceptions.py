"""
Custom exceptions for the mass update system
"""

from typing import Optional


class MassUpdateError(Exception):
    """Base exception for mass update operations"""
    pass


class ConfigurationError(MassUpdateError):
    """Configuration and setup errors, including an unresolvable site source"""
    pass


class FilterEmptyError(MassUpdateError):
    """The upstream filter excluded every candidate site"""
    pass


class PantheonAPIError(MassUpdateError):
    """Pantheon API communication errors"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SecretsManagerError(MassUpdateError):
    """Secrets Manager access errors"""
    pass


class SiteError(MassUpdateError):
    """
    Error tied to a single site; never aborts the batch
    """

    def __init__(self, site_name: str, message: str):
        super().__init__(message)
        self.site_name = site_name
        self.message = message


class DiscoveryError(SiteError):
    """Upstream status for a site could not be determined"""
    pass


class EligibilityError(SiteError):
    """Site is frozen or its environment is not in git mode"""
    pass


class ApplyError(SiteError):
    """Triggering or polling the apply workflow failed"""
    pass


class ApplyTimeoutError(ApplyError):
    """The apply workflow did not finish before the deadline"""
    pass


class PostActionError(SiteError):
    """A maintenance command exited non-zero or could not be started"""

    def __init__(self, site_name: str, action: str, message: str):
        super().__init__(site_name, message)
        self.action = action


class BatchFailedError(MassUpdateError):
    """One or more sites failed to update"""

    def __init__(self, failed_count: int):
        super().__init__(
            f"{failed_count} site(s) failed to update. Review the logs above for details."
        )
        self.failed_count = failed_count
