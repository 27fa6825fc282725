# processor/errors.py
"""
Errores del pipeline de importación y de almacenamiento.

Los errores estructurales (contenedor/paquete roto, sin secciones legibles,
entrada vacía) abortan la importación completa y llevan un mensaje que se
puede mostrar tal cual al usuario. Ninguno se reintenta automáticamente.
"""


class ImportFailedError(Exception):
    """Base de todos los errores que abortan una importación."""
    pass


class MalformedContainerError(ImportFailedError):
    """META-INF/container.xml no existe o no declara un rootfile."""
    pass


class MalformedPackageError(ImportFailedError):
    """El documento OPF no se pudo leer o parsear."""
    pass


class NoReadableSectionsError(ImportFailedError):
    """Ni el spine ni el manifest tienen documentos de texto legibles."""
    pass


class EmptyInputError(ImportFailedError):
    """El archivo no tiene contenido extraíble."""
    pass


class NoTokensProducedError(ImportFailedError):
    """Hubo texto, pero el tokenizer no produjo ningún token."""
    pass


class UnsupportedFormatError(ImportFailedError):
    """Se lanza cuando ningún parser registrado puede manejar el archivo."""
    pass


class ImportCancelledError(ImportFailedError):
    """El caller pidió cancelar en un punto de cesión."""
    pass


class StoreIoError(Exception):
    """
    Fallo de escritura/lectura del almacén clave-valor.
    Se propaga al caller; no se reintenta internamente.
    """
    pass


def error_message(error: object, fallback: str) -> str:
    """Mensaje presentable de una excepción, o el fallback si no hay uno útil."""
    if isinstance(error, BaseException) and str(error).strip():
        return str(error)
    return fallback
