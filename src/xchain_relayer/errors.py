"""Relayer exceptions."""


class RelayerError(Exception):
    """Base for relayer errors."""


class DecodeError(RelayerError):
    """A log matched the event topic but could not be decoded."""

    def __init__(self, reason: str, log_index: int | None = None) -> None:
        location = f" (log {log_index})" if log_index is not None else ""
        super().__init__(f"Failed to decode message{location}: {reason}")
        self.reason = reason
        self.log_index = log_index


class ExtractionError(RelayerError):
    """Extraction failed; the batch cannot be relayed safely."""

    def __init__(self, message: str, errors: list[DecodeError] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class SourceTransactionFailed(ExtractionError):
    """The triggering transaction on the source chain did not succeed."""


class PollError(RelayerError):
    """The destination finality query failed."""

    def __init__(self, key: tuple[str, int], reason: str) -> None:
        super().__init__(f"Finality query failed for sequence {key[1]} from {key[0]}: {reason}")
        self.key = key
        self.reason = reason


class RelayError(RelayerError):
    """Submitting a message to the destination executor failed."""

    def __init__(self, key: tuple[str, int], reason: str) -> None:
        super().__init__(f"Relay failed for sequence {key[1]} from {key[0]}: {reason}")
        self.key = key
        self.reason = reason
