"""Exception types raised by the comp scoring engine."""


class CompScoringError(Exception):
    """Base class for comp scoring failures."""
    pass


class ImageComparisonError(CompScoringError):
    """Image comparison collaborator failed for a comp."""
    def __init__(self, comp_id: str, reason: str):
        self.comp_id = comp_id
        self.reason = reason
        super().__init__(f"Image comparison failed for comp {comp_id}: {reason}")


class InvalidCandidateError(CompScoringError):
    """Upstream comp payload cannot be turned into a candidate record."""
    pass
