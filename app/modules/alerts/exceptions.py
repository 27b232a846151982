class AlertEngineError(Exception):
    """Base class for errors raised by the alert engine and its stores."""


class InvalidRuleDefinition(AlertEngineError):
    """A rule failed validation (e.g. BETWEEN bounds out of order)."""


class NotFound(AlertEngineError):
    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class InvalidAlertTransition(AlertEngineError):
    def __init__(self, alert_id: str, current: str, requested: str) -> None:
        super().__init__(f"alert {alert_id} is {current}; cannot {requested}")
        self.alert_id = alert_id
        self.current = current
        self.requested = requested


class StoreError(AlertEngineError):
    """The backing store failed; the caller may retry the whole operation."""
