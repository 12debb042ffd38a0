"""Exception hierarchy shared by the store, ledger and notifier layers."""


class WeeklybotError(Exception):
    """Base class for all weeklybot errors."""


class ConfigError(WeeklybotError):
    """Configuration is missing or invalid."""


class StoreError(WeeklybotError):
    """The record store could not complete an operation."""


class StoreUnavailableError(StoreError):
    """Active rules could not be loaded; the evaluation pass must abort."""


class LedgerWriteError(WeeklybotError):
    """A delivery record could not be appended to the ledger."""

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        super().__init__(f"Ledger write failed for {rule_id}: {reason}")


class NotifierError(WeeklybotError):
    """The outbound notifier did not confirm delivery."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
