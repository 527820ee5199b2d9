"""Exception hierarchy for plugin parsing, string tables and write-back."""

from __future__ import annotations


class EspTextError(Exception):
    """Base class for every error raised by esptext."""


class PluginFormatError(EspTextError, ValueError):
    """The container bytes do not describe a valid record tree.

    ``offset`` is the absolute byte position where the problem was detected,
    or None when the error is not tied to a position (e.g. a detached payload).
    """

    def __init__(self, message: str, offset: int | None = None) -> None:
        if offset is not None:
            message = f"{message} (at offset 0x{offset:X})"
        super().__init__(message)
        self.offset = offset


class TruncatedHeader(PluginFormatError):
    """Fewer than 24 bytes left where a record or group header was expected."""


class PayloadOverrun(PluginFormatError):
    """A declared record/group length runs past the end of the buffer."""


class GroupLengthMismatch(PluginFormatError):
    """A group's declared size disagrees with the bytes its children consumed."""


class UnsupportedCompression(PluginFormatError):
    """A compressed payload could not be inflated to its declared size."""


class SubrecordOverrun(PluginFormatError):
    """A subrecord header or payload extends past the end of the record data."""


class StringTableFormatError(PluginFormatError):
    """A .strings/.dlstrings/.ilstrings file is malformed."""


class StringTableNotFound(EspTextError, LookupError):
    """An update targets a string table whose file was not present."""


class StringIdNotFound(EspTextError, LookupError):
    """A string ID is absent from the loaded tables."""

    def __init__(self, string_id: int, where: str = "string tables") -> None:
        super().__init__(f"String ID 0x{string_id:08X} not found in {where}")
        self.string_id = string_id


class OccurrenceKeyNotFound(EspTextError, LookupError):
    """An edit references a key that the current tree does not produce."""

    def __init__(self, key: object) -> None:
        super().__init__(f"No translatable occurrence for key {key}")
        self.key = key


class NonUtf8InlinePayload(EspTextError, ValueError):
    """An inline string payload is not valid UTF-8."""


class EditBatchRejected(EspTextError):
    """An all-or-nothing edit batch had failures; nothing was applied."""

    def __init__(self, report: object, failures: int) -> None:
        super().__init__(f"{failures} edit(s) rejected; batch not applied")
        self.report = report
