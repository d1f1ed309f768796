"""Environment configuration interface for ipsw-diff.

All environment variable access goes through this module so the CLI, the
pipeline stages and the tests agree on names and defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from .constants import (
    DEFAULT_ARCHITECTURES,
    DEFAULT_ARCHIVE_PART_SIZE,
    DEFAULT_DIFF_PART_SIZE,
    SECURITY_UPDATES_URL,
)

# Load environment variables from .env file if it exists
load_dotenv()


class Environment:
    """Interface for accessing environment configuration."""

    @staticmethod
    def base_dir() -> Path:
        """Get the root directory holding firmware images and work dirs.

        Returns:
            Base directory, defaults to ./ipsw_diffs
        """
        return Path(os.getenv("IPSW_DIFF_BASE_DIR", "./ipsw_diffs"))

    @staticmethod
    def ipsw_bin() -> str:
        """Get the ipsw executable name or path.

        Returns:
            Executable, defaults to 'ipsw'
        """
        return os.getenv("IPSW_BIN", "ipsw")

    @staticmethod
    def zip_bin() -> str:
        """Get the Info-ZIP executable name or path.

        Returns:
            Executable, defaults to 'zip'
        """
        return os.getenv("ZIP_BIN", "zip")

    @staticmethod
    def architectures() -> tuple[str, ...]:
        """Get the architecture priority list, primary first.

        Returns:
            Architectures parsed from a comma separated IPSW_DIFF_ARCHS,
            defaults to ('arm64e', 'x86_64')
        """
        raw = os.getenv("IPSW_DIFF_ARCHS", "")
        archs = tuple(a.strip() for a in raw.split(",") if a.strip())
        return archs or DEFAULT_ARCHITECTURES

    @staticmethod
    def diff_part_size() -> str:
        """Get the split size used when caching the diff JSON (zip -s syntax)."""
        return os.getenv("DIFF_PART_SIZE", DEFAULT_DIFF_PART_SIZE)

    @staticmethod
    def archive_part_size() -> str:
        """Get the split size used for the final artifact (zip -s syntax)."""
        return os.getenv("ARCHIVE_PART_SIZE", DEFAULT_ARCHIVE_PART_SIZE)

    @staticmethod
    def tag_versions() -> bool:
        """Whether the version tagging post-pass is enabled.

        Returns:
            True when TAG_VERSIONS is 1/true/yes, defaults to False
        """
        return os.getenv("TAG_VERSIONS", "0").strip().lower() in ("1", "true", "yes")

    @staticmethod
    def security_updates_url() -> str:
        return os.getenv("SECURITY_UPDATES_URL", SECURITY_UPDATES_URL)

    @staticmethod
    def github_output() -> Path | None:
        """Get the CI side-channel output file, if one is designated.

        Returns:
            Path from GITHUB_OUTPUT, or None when unset or empty
        """
        value = os.getenv("GITHUB_OUTPUT", "")
        return Path(value) if value else None


# Singleton instance for convenient access
env = Environment()
