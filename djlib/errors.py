"""Exceptions raised by djlib.

All of them derive from ``DJError``. Where a built-in exception has the
same meaning it is a second base, so callers may catch ``ValueError`` or
``TypeError`` as usual.
"""


class DJError(Exception):
    """Base class of every djlib exception."""


class KeyNotSetError(DJError):
    """The key needed by an operation has not been set."""


class DomainError(DJError, ValueError):
    """A value lies outside the residue range it is required to be in."""


class SizeMismatchError(DomainError):
    """Ciphertexts combined homomorphically use different lengths ``s``."""


class DJTypeError(DJError, TypeError):
    """A plaintext, ciphertext or number of the wrong type was supplied."""


class InvalidKeyError(DJError, TypeError):
    """A key is not a Damgard-Jurik key, or keys do not match."""


class InvalidParameterError(DJError, ValueError):
    """Key generation parameters are of the wrong shape or out of range."""


class UnsupportedOperation(DJError, NotImplementedError):
    """The operation is permanently unsupported by the scheme."""
