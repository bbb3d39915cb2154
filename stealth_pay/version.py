"""
StealthPay - Version Management
=================================
Versioning semantico e build info.

Last Updated: 2026-10-19
Version: 1.0.0
"""

from typing import NamedTuple

from stealth_pay.constants import PROJECT_NAME, PROTOCOL_VERSION


# ============================================================================
# VERSION INFO
# ============================================================================

class VersionInfo(NamedTuple):
    """Version information structure"""
    major: int
    minor: int
    patch: int
    prerelease: str = ""


VERSION = VersionInfo(major=1, minor=0, patch=0)


def get_version_string() -> str:
    """
    Get version as string.

    Example:
        >>> get_version_string()
        '1.0.0'
    """
    version_str = f"{VERSION.major}.{VERSION.minor}.{VERSION.patch}"

    if VERSION.prerelease:
        version_str += f"-{VERSION.prerelease}"

    return version_str


def get_build_info() -> dict:
    """Version + protocol info (CLI `version`)"""
    return {
        "name": PROJECT_NAME,
        "version": get_version_string(),
        "protocol_version": PROTOCOL_VERSION,
        "meta_address_version": f"0x{PROTOCOL_VERSION:02x}",
    }


__version__ = get_version_string()
__version_info__ = VERSION

__all__ = [
    "__version__",
    "__version_info__",
    "VERSION",
    "get_version_string",
    "get_build_info",
]
