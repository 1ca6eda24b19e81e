class RecipeFinderError(Exception):
    """Base class for errors raised by the search core."""

    def __init__(self, error, message=None):
        super().__init__(error)
        self.error = error
        self.message = message


class InvalidInput(RecipeFinderError):
    """Rejected at the API boundary; inside the core empty input just
    yields an empty result."""


class BackendUnavailable(RecipeFinderError):
    """A storage or vector index call failed or timed out."""


class NotFound(RecipeFinderError):
    pass
