"""Shared constants for the ipsw-diff workflow.

For environment-based configuration (tool paths, split sizes, etc.), use the env module:
    from common.env import env
    archs = env.architectures()
"""

# Architecture priority: primary first, fallback second
DEFAULT_ARCHITECTURES: tuple[str, ...] = ("arm64e", "x86_64")

# zip -s split sizes
DEFAULT_DIFF_PART_SIZE = "99m"
DEFAULT_ARCHIVE_PART_SIZE = "1900m"

DEFAULT_OS_TYPE = "macOS"
DEFAULT_DEVICE = "Mac14,3"

SECURITY_UPDATES_URL = "https://support.apple.com/en-us/100100"

# Sections whose changes are metadata only and must not flag a binary as changed
DIFF_BLOCK_LIST: tuple[str, ...] = ("__TEXT.__info_plist",)

# Marker lines in the diff text meaning the executable section changed.
# Kexts live in the kernelcache where code sits in __TEXT_EXEC.
TEXT_CHANGE_MARKERS: dict[str, str] = {
    "kexts": "-  __TEXT_EXEC.__text",
    "dylibs": "-  __TEXT.__text",
    "machos": "-  __TEXT.__text",
}

CHANGE_CATEGORIES: tuple[str, ...] = ("kexts", "dylibs", "machos")

# Working directory layout
WORKDIR_SUBDIRS: tuple[str, ...] = ("diffs", "extracted", "metadata", "changed", "extracted_full")
FIRMWARE_DIRNAME = "IPSWs"

# Firmware file name patterns per OS type; anything else matches on device id
FIRMWARE_NAME_PATTERNS: dict[str, str] = {
    "macOS": "UniversalMac_*_{build}_Restore.ipsw",
    "visionOS": "Apple_Vision_Pro_*_{build}_Restore.ipsw",
    "iPod": "iPodtouch_7_*_{build}_Restore.ipsw",
}
GENERIC_FIRMWARE_PATTERN = "*{device}*_{build}_Restore.ipsw"

# macOS Finder metadata files that must never be treated as content
APPLEDOUBLE_PREFIX = "._"
