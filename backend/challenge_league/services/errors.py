from __future__ import annotations


class LeagueError(Exception):
    """Base for domain errors; routes map status_code onto HTTPException."""
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(LeagueError):
    status_code = 404


class Forbidden(LeagueError):
    status_code = 403


class InvalidTransition(LeagueError):
    pass


class QueueValidationError(LeagueError):
    pass


class VoteRejected(LeagueError):
    pass


class SubmissionClosed(LeagueError):
    pass
