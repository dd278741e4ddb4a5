"""Custom exceptions for the RMDB console."""


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ExecError(ManagerError):
    """A command invocation was refused or could not be carried out."""


class NotAllowed(ExecError):
    """The current trust level does not permit the requested operation."""


class MissingEscalation(ExecError):
    """The escalation tool (sudo) is not installed on this host."""


class Failed(ExecError):
    """The process could not be launched or did not complete."""


class AuthError(ManagerError):
    """Escalation credentials could not be established."""


class IncorrectSecret(AuthError):
    pass


class ValidationUnconfirmed(AuthError):
    pass


class ContainerExists(ManagerError):
    pass


class InvalidContainerName(ManagerError):
    pass
