class GraphMcpError(Exception):
    pass


class ConfigurationError(GraphMcpError):
    pass


class AuthenticationError(GraphMcpError):
    pass


class GraphAPIError(GraphMcpError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class DirectoryAuthenticationError(AuthenticationError):
    """The identity provider rejected the credential."""


class DirectoryPermissionError(GraphAPIError):
    """Authenticated, but Graph refused the call (HTTP 403)."""

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message, status_code=403, error_code=error_code)
