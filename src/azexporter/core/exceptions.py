class AzExporterError(Exception):
    """Base exception for the Azure exporter."""

    pass


class AuthError(AzExporterError):
    """Raised when a credential cannot be acquired."""

    pass


class DirectoryError(AzExporterError):
    """Raised when the list of subscriptions cannot be fetched."""

    pass


class ProviderError(AzExporterError):
    """
    Raised when a provider list API call fails.

    Transient and permanent failures propagate identically; the flag only
    changes what gets logged and whether a configured retry is attempted.
    """

    def __init__(self, message: str, transient: bool = False, status_code: int = None, url: str = None):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code
        self.url = url

    @property
    def kind(self) -> str:
        return "transient" if self.transient else "permanent"


class SchemaMismatchError(AzExporterError):
    """Raised when a sample's labels do not match the publisher's label schema."""

    def __init__(self, metric: str, expected, labels):
        self.metric = metric
        self.expected = tuple(expected)
        self.labels = tuple(sorted(labels))
        missing = sorted(set(self.expected) - set(self.labels))
        extra = sorted(set(self.labels) - set(self.expected))
        super().__init__(f"Label schema mismatch for metric '{metric}': missing={missing}, extra={extra}")


class RegistrationError(AzExporterError):
    """Raised when a metric name is registered twice."""

    pass


class ScopeIterationError(AzExporterError):
    """
    Raised when scope iteration produced no successful scope at all, or when
    a worker ended cancelled although the iteration itself was not.
    """

    def __init__(self, failures, message: str = None):
        self.failures = list(failures)
        super().__init__(message or f"All {len(self.failures)} scope(s) failed")


class TickFailedError(AzExporterError):
    """Raised by the scheduler when a collection tick is abandoned."""

    def __init__(self, message: str, cause: BaseException = None):
        super().__init__(message)
        self.cause = cause
