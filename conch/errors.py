
class ConchError(Exception):
    """ Base class for all conch errors"""
    kind = "error/runtime"
    status = 1

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ConchSyntaxError(ConchError):
    """ Raised when a special form is malformed or input cannot be read"""
    kind = "error/syntax"


class ConchRuntimeError(ConchError):
    """ Raised when evaluation of a well-formed program fails"""


class ConchUndefined(ConchRuntimeError):
    """ Raised when a name cannot be resolved"""

    def __init__(self, name: str):
        super().__init__(f"'{name}' undefined")
        self.name = name


class ConchArityError(ConchRuntimeError):
    """ Raised when the number of arguments passed to a closure is incorrect"""


class ConchTypeError(ConchRuntimeError):
    """ Raised when a value does not have the type an operation requires"""


class ConchNotFound(ConchRuntimeError):
    """ Raised when an external command cannot be found"""
    status = 127


class ConchNotExecutable(ConchRuntimeError):
    """ Raised when an external command exists but cannot be executed"""
    status = 126


class ConchFatal(ConchError):
    """ Raised to report an explicit, unrecoverable exit requested by a program"""
    kind = "error/fatal"
