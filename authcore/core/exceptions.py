# authcore/core/exceptions.py


class AuthCoreError(Exception):
    """Base de todas as exceções do núcleo de autenticação."""

    def __init__(self, message: str = "Authentication core error"):
        self.message = message
        super().__init__(self.message)


class UnauthorizedError(AuthCoreError):
    """
    Falha de autenticação. A mensagem é sempre genérica: o chamador não deve
    conseguir distinguir token expirado, revogado ou reutilizado.
    """

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)


class InvalidTokenError(UnauthorizedError):
    """Assinatura, expiração ou claims do JWT inválidos."""


class DurableStoreError(AuthCoreError):
    """Banco de dados indisponível ou falha de escrita. O chamador pode tentar de novo."""

    retryable = True

    def __init__(self, message: str = "Durable store unavailable"):
        super().__init__(message)
