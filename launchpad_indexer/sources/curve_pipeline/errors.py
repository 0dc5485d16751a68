class PipelineError(Exception):
    """Base class for pipeline failures that should abort a single unit of work."""


class ChainNotConfiguredError(PipelineError):
    pass


class GraduationError(PipelineError):
    """A graduation was detected but its companion logs are inconsistent."""

    def __init__(self, tx_hash: str, reason: str):
        super().__init__(f"graduation tx {tx_hash}: {reason}")
        self.tx_hash = tx_hash
        self.reason = reason
