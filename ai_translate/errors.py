"""Exception types raised by the translation sync tool."""


class AiTranslateError(Exception):
    """Base class for all errors raised by ai_translate."""


class SetupError(AiTranslateError):
    """
    Raised for problems that must stop a run before any translation work starts:
    missing input files, missing required parameters, unknown language codes.
    """


class TranslationError(AiTranslateError):
    """Raised when the translation capability fails to produce a usable response."""


class TranslationResponseError(TranslationError):
    """Raised when the model answered, but the content is empty or not a JSON object."""
