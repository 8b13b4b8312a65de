"""Error taxonomy shared by the query layer and the HTTP boundary.

Each error knows the status code and message the API renders for it; the
handlers in ``game_analytics.main`` turn them into ``{"error": ...}`` bodies.
"""


class AnalyticsError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ClientInputError(AnalyticsError):
    """A required parameter is missing or a parameter is malformed.

    Raised before any warehouse query is built.
    """

    status_code = 400


class AuthError(AnalyticsError):
    """Missing, invalid, expired or revoked session credential"""

    def __init__(self, message: str, status_code: int = 401, clear_cookie: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.clear_cookie = clear_cookie


class UpstreamQueryError(AnalyticsError):
    """The warehouse call failed. Callers only ever see a generic message."""

    status_code = 500

    def __init__(self, query_name: str):
        super().__init__("Internal server error")
        self.query_name = query_name
