import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from .config import ProfileStore
from .constants import DING_MESSAGE_TYPE, DING_SUCCESS_ERRCODE, DING_TIMEOUT_SECONDS
from .errors import NetworkError, ProfileNotFoundError, RenderError, UpstreamError
from .models import AlertGroupPayload, RenderedMessage
from .template import TemplateStore

logger = logging.getLogger(__name__)

OK = 'ok'
NOT_FOUND = 'not_found'
CLIENT_ERROR = 'client_error'
UPSTREAM_ERROR = 'upstream_error'

# Respostas do robô são pequenas; acima disso a resposta é tratada como inválida
MAX_RESPONSE_BYTES = 64 * 1024


@dataclass(frozen=True)
class DispatchOutcome:
    kind: str
    status_code: int
    detail: str = ''
    response: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.kind == OK


def _read_body(resp: requests.Response, deadline: float, timeout: float) -> bytes:
    # Lê byte a byte para conferir o prazo total mesmo com servidor gotejando
    chunks = []
    size = 0
    for chunk in resp.iter_content(chunk_size=1):
        if time.monotonic() > deadline:
            raise NetworkError(f"timeout after {timeout}s reading DingTalk response", timeout=True)
        size += len(chunk)
        if size > MAX_RESPONSE_BYTES:
            raise UpstreamError(
                f"DingTalk response larger than {MAX_RESPONSE_BYTES} bytes",
                status_code=resp.status_code,
            )
        chunks.append(chunk)
    return b''.join(chunks)


def send_dingtalk_payload(webhook_url: str, message: RenderedMessage, timeout: float = DING_TIMEOUT_SECONDS) -> Dict[str, Any]:
    """
    Faz um único POST ao robô do DingTalk e devolve o corpo de resposta.

    Cada chamada abre uma conexão nova (sem keep-alive). O timeout vale
    para a chamada inteira: além do limite por leitura do requests, o corpo
    é lido contra um prazo total. Levanta NetworkError em timeout/falha de
    conexão e UpstreamError quando o DingTalk não confirma a mensagem.
    """
    payload = message.to_payload(DING_MESSAGE_TYPE)
    deadline = time.monotonic() + timeout
    try:
        resp = requests.post(
            webhook_url,
            json=payload,
            timeout=timeout,
            headers={'Connection': 'close'},
            stream=True,
        )
        try:
            content = _read_body(resp, deadline, timeout)
        finally:
            resp.close()
    except requests.Timeout as exc:
        raise NetworkError(f"timeout after {timeout}s talking to DingTalk: {exc}", timeout=True) from exc
    except requests.ConnectionError as exc:
        # requests reembala o timeout de leitura do corpo como ConnectionError
        if time.monotonic() >= deadline:
            raise NetworkError(f"timeout after {timeout}s talking to DingTalk: {exc}", timeout=True) from exc
        raise NetworkError(f"cannot reach DingTalk: {exc}") from exc
    except requests.RequestException as exc:
        raise NetworkError(f"cannot reach DingTalk: {exc}") from exc

    try:
        text = content.decode(resp.encoding or 'utf-8', errors='replace')
    except LookupError:
        text = content.decode('utf-8', errors='replace')
    logger.debug("DingTalk response: %s %s", resp.status_code, text)

    if not 200 <= resp.status_code < 300:
        raise UpstreamError(
            f"DingTalk returned HTTP {resp.status_code}",
            status_code=resp.status_code,
            body=text,
        )

    try:
        body = json.loads(text)
    except ValueError:
        raise UpstreamError(
            "DingTalk returned a non-JSON response",
            status_code=resp.status_code,
            body=text,
        ) from None
    if not isinstance(body, dict):
        raise UpstreamError("DingTalk returned an unexpected response", status_code=resp.status_code, body=text)

    errcode = body.get('errcode', DING_SUCCESS_ERRCODE)
    if errcode != DING_SUCCESS_ERRCODE:
        raise UpstreamError(
            f"DingTalk rejected the message: errcode={errcode} errmsg={body.get('errmsg', '')}",
            status_code=resp.status_code,
            errcode=errcode,
            body=text,
        )
    return body


class Dispatcher:
    """Resolve o profile, renderiza a mensagem e entrega no webhook de destino."""

    def __init__(self, profiles: ProfileStore, templates: TemplateStore, timeout: float = DING_TIMEOUT_SECONDS):
        self.profiles = profiles
        self.templates = templates
        self.timeout = timeout

    def dispatch(self, profile: str, payload: AlertGroupPayload) -> DispatchOutcome:
        # Snapshots tirados uma única vez; um reload concorrente não afeta esta entrega
        table = self.profiles.snapshot()
        compiled = self.templates.current

        try:
            webhook_url = table.lookup(profile)
        except ProfileNotFoundError as exc:
            logger.warning("Profile '%s' não encontrado (disponíveis: %s)", profile, sorted(table))
            return DispatchOutcome(NOT_FOUND, 404, str(exc), error=exc)

        try:
            message = compiled.render(payload)
        except RenderError as exc:
            logger.warning("Falha ao renderizar alerta para profile '%s': %s", profile, exc)
            return DispatchOutcome(CLIENT_ERROR, 400, str(exc), error=exc)

        try:
            body = send_dingtalk_payload(webhook_url, message, timeout=self.timeout)
        except NetworkError as exc:
            logger.error("Falha de rede ao enviar para profile '%s': %s", profile, exc)
            return DispatchOutcome(UPSTREAM_ERROR, 504 if exc.timeout else 502, str(exc), error=exc)
        except UpstreamError as exc:
            logger.error(
                "DingTalk recusou mensagem do profile '%s': status=%s errcode=%s body=%s",
                profile, exc.status_code, exc.errcode, exc.body,
            )
            return DispatchOutcome(UPSTREAM_ERROR, 502, str(exc), error=exc)

        logger.info("Alerta '%s' entregue ao profile '%s'", message.title, profile)
        return DispatchOutcome(OK, 200, body.get('errmsg', 'ok'), response=body)
