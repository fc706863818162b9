"""Error taxonomy surfaced to users.

Every message carried by these exceptions is plain text meant to be shown
as-is; backend payloads never end up in them.
"""

from __future__ import annotations


class PortalError(Exception):
    default_message = "Se produjo un error inesperado."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(PortalError):
    default_message = "Error de inicialización: la configuración del backend no es válida."


class AuthError(PortalError):
    default_message = "Error de autenticación."


class StoreError(PortalError):
    default_message = "No se pudo acceder al almacén de solicitudes."


class StorageError(PortalError):
    default_message = "No se pudo acceder al almacenamiento de archivos."


class SubmitError(PortalError):
    default_message = "Error al enviar la solicitud."


class NotAuthenticated(SubmitError):
    default_message = "Error: el usuario no está autenticado."


class InvalidFields(SubmitError):
    default_message = "Solicitud inválida. Revisa los campos obligatorios."

    def __init__(self, field_errors: dict[str, str], message: str | None = None) -> None:
        self.field_errors = dict(field_errors)
        super().__init__(message)


class MissingAttachment(SubmitError):
    default_message = "Este tipo de solicitud requiere adjuntar un certificado."


class UploadError(SubmitError):
    default_message = "Error al subir el archivo adjunto. La solicitud no se registró."


class StoreWriteError(SubmitError):
    default_message = "Error al guardar la solicitud. Inténtalo nuevamente."


class DeleteError(PortalError):
    default_message = "Error al eliminar la solicitud."


class ExportError(PortalError):
    default_message = "Error al exportar las solicitudes."


class NothingToExport(ExportError):
    default_message = "No hay solicitudes para exportar."
