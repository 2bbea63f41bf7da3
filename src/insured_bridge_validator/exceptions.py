"""Exception types raised by the relay validator.

An invalid relay is a normal verdict, not an exception. The types here cover
the cases where no verdict can be produced at all.
"""


class InsuredBridgeError(Exception):
    """Base class for insured bridge validator errors."""


class DecodeError(InsuredBridgeError, ValueError):
    """Ancillary data could not be parsed into a relay claim.

    Callers must treat this as "cannot adjudicate". Retrying with the same
    input will fail the same way.
    """


class RefreshError(InsuredBridgeError):
    """An L1 or L2 client failed to refresh.

    The previously cached snapshots stay authoritative until the next
    successful refresh.
    """
