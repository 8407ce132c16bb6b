class SquadError(Exception):
    """Base class for errors raised while reconciling a squad."""


class ValidationError(SquadError, ValueError):
    """The squad spec cannot be applied as written, e.g. negative replicas."""


class FinalizationIncomplete(SquadError):
    """Owned workers are still present after the finalization sweep."""

    def __init__(self, remaining):
        self.remaining = list(remaining)
        super().__init__(f"Workers still present after cleanup: {', '.join(self.remaining)}")
