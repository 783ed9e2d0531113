"""Error taxonomy for sddmmflow"""


class SDDMMError(Exception):
    """Base class for fatal sddmmflow errors"""


class InputError(SDDMMError, ValueError):
    """Invalid user input (arguments, config values, matrix files)"""


class DimensionMismatch(SDDMMError, ValueError):
    """Sparse view and dense operand shapes disagree"""


class OutOfRange(SDDMMError, IndexError):
    """A column index falls outside [0, N)"""


class AllocationFailure(SDDMMError, MemoryError):
    """Host or device memory exhausted"""


class NumericMismatch(RuntimeWarning):
    """A strategy's output deviates from the reference beyond tolerance.

    Emitted with ``warnings.warn``; never raised as a fatal error.
    """
