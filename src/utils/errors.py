"""Error handling utilities."""


class PipelinePulseError(Exception):
    """Base exception for Pipeline Pulse backend."""
    status_code = 500


class InvalidStateError(PipelinePulseError):
    """Step or task is not in the state the operation requires."""
    status_code = 400


class NoPreviousStepError(InvalidStateError):
    """Return was attempted on the first step of a pipeline."""
    pass


class UnauthorizedError(PipelinePulseError):
    """Actor lacks the role or assignment required for the action."""
    status_code = 403


class NotFoundError(PipelinePulseError):
    """Referenced task, step or member does not exist."""
    status_code = 404


class ValidationError(PipelinePulseError):
    """Required input is missing or malformed."""
    status_code = 400


class UpstreamFailureError(PipelinePulseError):
    """LLM or email dependency failed or is not configured."""
    status_code = 502


class SupabaseError(PipelinePulseError):
    """Supabase operation error."""
    pass


class MethodNotAllowedError(PipelinePulseError):
    """HTTP method is not supported by the endpoint."""
    status_code = 405
