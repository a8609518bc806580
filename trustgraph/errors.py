# errors.py


class TrustGraphError(Exception):
    """Base class for every error raised by the trustgraph package."""


class ConfigurationError(TrustGraphError, ValueError):
    """A configuration value has no sane default and the pass must abort."""


class InvalidAccountError(TrustGraphError, ValueError):
    """An account identifier could not be parsed into a 160-bit address."""


class AttestationDecodeError(TrustGraphError):
    """The weight field of a single attestation could not be decoded."""


class SourceValueError(TrustGraphError):
    """A reward source returned a value above the per-source ceiling."""


class AllocationIntegrityError(TrustGraphError):
    """
    The allocator distributed more than the pool holds.

    This always indicates a defect in the scaling or division logic and
    must never be corrected by trimming the result.
    """

    def __init__(self, distributed: int, pool: int):
        self.distributed = distributed
        self.pool = pool
        super().__init__(
            f"Over-assigned rewards: distributed {distributed}, pool {pool}"
        )
