class InvalidStateTransitionError(Exception):
    pass
