"""Constants for the TES4-family binary format (Fallout 3/NV, Skyrim, Fallout 4)."""

from enum import IntEnum, IntFlag

# Magic type tags
GRUP_TYPE = b"GRUP"
TES4_TYPE = b"TES4"

# Extended-size marker: payload is a uint32 length for the next subrecord
XXXX_TYPE = b"XXXX"

# Record header: Type(4) + DataSize(4) + Flags(4) + FormID(4)
#                + Stamp(2) + VCS(2) + Version(2) + Unknown(2)
RECORD_HEADER_SIZE = 24

# GRUP header is always 24 bytes across all games
GRUP_HEADER_SIZE = 24  # "GRUP"(4) + GroupSize(4) + Label(4) + GroupType(4) + Stamp(4) + Unknown(4)

# Subrecord header: Type(4) + Size(2)
SUBRECORD_HEADER_SIZE = 6

# Largest payload a subrecord can declare without an XXXX marker
MAX_SUBRECORD_SIZE = 0xFFFF

# HEDR version floats to detect game
HEDR_VERSION_FO3 = 0.94      # Fallout 3 and New Vegas
HEDR_VERSION_SKYRIM = 1.70   # Skyrim LE (SE writes 1.71)
HEDR_VERSION_FO4 = 0.95      # Fallout 4

DEFAULT_LANGUAGE = "english"


class Game(IntEnum):
    """Detected game based on HEDR version."""
    UNKNOWN = 0
    FALLOUT3 = 2   # Also covers Fallout NV (same format)
    SKYRIM = 5     # Skyrim (LE and SE)
    FALLOUT4 = 6


class RecordFlag(IntFlag):
    """Common record flags."""
    MASTER = 0x00000001
    LOCALIZED = 0x00000080  # TES4 only: strings live in external tables
    LIGHT = 0x00000200      # ESL
    COMPRESSED = 0x00040000
