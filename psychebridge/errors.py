"""
Error taxonomy for the clinical training system.

Domain errors are raised to callers (engine, web layer, console).
CollaboratorFailure is raised only inside the AI collaborator and is
absorbed there into fallback text.
"""


class PsycheBridgeError(Exception):
    """Base class for all domain errors"""
    pass


class PreconditionError(PsycheBridgeError):
    """Action attempted outside its valid state (e.g. locked course, non-active session)"""
    pass


class InvalidTransitionError(PsycheBridgeError):
    """Session status transition attempted out of order"""
    pass


class NotFoundError(PsycheBridgeError):
    """Referenced session, course or user id is absent"""
    pass


class ValidationError(PsycheBridgeError):
    """Payload failed validation (score range, required text, malformed record)"""
    pass


class PersistenceError(PsycheBridgeError):
    """Stored state is unreadable or has an unexpected schema version"""
    pass


class CollaboratorFailure(PsycheBridgeError):
    """AI generation failed. Never propagated past the collaborator boundary."""
    pass
