class ProxyError(Exception):
    """Base de todos os erros do proxy."""


class ConfigError(ProxyError):
    """Documento de profiles inválido ou incompleto."""


class TemplateError(ProxyError):
    """Template que não compila (sintaxe ou blocos obrigatórios ausentes)."""


class RenderError(ProxyError):
    """Falha ao renderizar um payload com o template ativo."""


class PayloadError(ProxyError):
    """Corpo da requisição não é um payload de alertas válido."""


class DispatchError(ProxyError):
    pass


class ProfileNotFoundError(DispatchError, KeyError):
    def __init__(self, profile):
        super().__init__(profile)
        self.profile = profile

    def __str__(self):
        return f"profile not found: {self.profile}"


class UpstreamError(DispatchError):
    """O DingTalk rejeitou a mensagem (status HTTP ou errcode)."""

    def __init__(self, message, status_code=None, errcode=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.errcode = errcode
        self.body = body


class NetworkError(UpstreamError):
    """Timeout ou falha de conexão na chamada de saída."""

    def __init__(self, message, timeout=False):
        super().__init__(message)
        self.timeout = timeout
