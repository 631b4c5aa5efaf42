class RelayError(Exception):
    """Base error for a relay request. Carries the HTTP status to report."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidIdentifier(RelayError):
    status_code = 400
    default_message = "Invalid YouTube Video ID"


class ResolutionError(RelayError):
    """Fetching the video metadata failed upstream."""

    def __init__(self, message=None):
        super().__init__(f"Server error: {message}" if message else None)


class NoSuitableFormat(RelayError):
    default_message = "No suitable streaming format found."


class StreamError(RelayError):
    default_message = "Stream processing error"

    def __init__(self, message=None, detail=None):
        # detail is logged, message is what the client sees
        super().__init__(message)
        self.detail = detail
