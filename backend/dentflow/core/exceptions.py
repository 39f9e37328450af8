"""Domain exceptions and their HTTP status mapping.

Messages are user-facing. They never contain the offending identifier, key
material or ciphertext.
"""

from fastapi import status


class DentflowError(Exception):
    """Base class for errors surfaced at the API boundary."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Interne serverfout"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class InvalidFormat(DentflowError):
    """Sensitive identifier failed structural or checksum validation."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Ongeldig BSN (11-proef mislukt)"


class JustificationTooShort(DentflowError):
    """Reveal requested without a sufficient justification."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Reden voor BSN inzage is verplicht (min 5 tekens)"


class ValidationError(DentflowError):
    """Input rejected by a domain rule."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Ongeldige invoer"


class AuthenticationError(DentflowError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Niet geautoriseerd"


class PermissionDenied(DentflowError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Onvoldoende rechten"


class NotFound(DentflowError):
    """Resource missing, or owned by another practice.

    Cross-tenant access is reported as NotFound so the existence of another
    practice's record is never confirmed.
    """

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Niet gevonden"


class Conflict(DentflowError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict met bestaande gegevens"


class DecryptionFailed(DentflowError):
    """Ciphertext could not be decrypted (malformed blob, bad key, unknown key version)."""

    default_message = "Gegevens konden niet worden ontsleuteld"


class IntegrityError(DecryptionFailed):
    """Authentication tag did not verify: tampered ciphertext or wrong key."""


class AuditWriteFailed(DentflowError):
    """Audit entry could not be persisted; the gated operation must not proceed."""

    default_message = "Audit registratie mislukt"


class TenantContextError(DentflowError):
    """Storage-layer tenant context could not be established."""

    default_message = "Praktijkcontext kon niet worden ingesteld"
