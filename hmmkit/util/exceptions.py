r"""
Error kinds raised by hmmkit. Sequence-level errors (dimension mismatches, unknown labels, empty input,
zero-likelihood observations) abort the processing of one observation sequence; during training the
sequence is skipped and counted.
"""


class DimensionMismatchError(ValueError):
    r""" Raised when the dimension of an observation or of a parameter vector does not agree with the
    dimension of the model it is used with. """


class InvalidNetError(ValueError):
    r""" Raised when a transition matrix or emitter list does not describe a valid left-to-right network with
    non-emitting entry and exit states. """


class UnknownLabelError(KeyError):
    r""" Raised when an assigner or a set cannot resolve a label or a net name. """

    def __str__(self):
        # KeyError quotes its argument, keep the message readable
        return str(self.args[0]) if self.args else ''


class EmptyChainError(ValueError):
    r""" Raised when a chain is requested for zero nets. """


class EmptyObservationError(ValueError):
    r""" Raised when an observation sequence has no frames. """


class ZeroLikelihoodError(ArithmeticError):
    r""" Raised when an observation sequence has zero probability under a chain, i.e., no path through the
    lattice can produce it. """


class TrainingError(RuntimeError):
    r""" Raised when a whole training iteration fails, e.g., because every observation sequence was rejected. """


class DegenerateWarning(RuntimeWarning):
    r"""
    This warning indicates that the effective number of samples collected for a net or emitter was too
    small to re-estimate its parameters; the parameters are left unchanged.
    """


class ReaderIOError(IOError):
    r""" Wraps errors of the underlying source or sink of observation readers and model writers. """


class SerializationError(ValueError):
    r""" Raised when a JSON document cannot be parsed or emitted.

    Parameters
    ----------
    message : str
        Human readable description.
    field : str, optional, default=None
        Name of the offending field, if known.
    """

    def __init__(self, message, field=None):
        if field is not None:
            message = f"{message} (field '{field}')"
        super().__init__(message)
        self.field = field


#: Errors which abort the processing of a single observation sequence but not of a whole dataset.
SEQUENCE_ERRORS = (DimensionMismatchError, UnknownLabelError, EmptyChainError, EmptyObservationError,
                   ZeroLikelihoodError)
