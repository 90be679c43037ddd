import logging
import re
import threading

from .constants import DEBUG_MODE, LOG_LEVEL

_MARKDOWN_SPECIAL = re.compile(r'([\\`*_\[\]#])')
_ZERO_TIME_PREFIX = '0001-01-01'


def _is_meaningful(value):
    if value is None:
        return False
    v = str(value).strip()
    if v == "":
        return False
    return v.lower() not in {"n/a", "none", "null"}


def format_timestamp(timestamp_str):
    # Alertmanager usa 0001-01-01T00:00:00Z como endsAt de alertas ainda ativos
    if not _is_meaningful(timestamp_str) or str(timestamp_str).startswith(_ZERO_TIME_PREFIX):
        return ''
    clean_timestamp = str(timestamp_str).replace('T', ' ')
    clean_timestamp = re.sub(r'\.\d+', '', clean_timestamp)
    return clean_timestamp.replace('Z', '')


def escape_markdown(value):
    if value is None:
        return ''
    return _MARKDOWN_SPECIAL.sub(r'\\\1', str(value))


def re_replace(value, pattern, replacement=''):
    return re.sub(pattern, replacement, '' if value is None else str(value))


def configure_logging(level=None):
    level_name = level or ('DEBUG' if DEBUG_MODE else LOG_LEVEL)
    logging.basicConfig(
        level=getattr(logging, str(level_name).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


class AtomicRef:
    """
    Referência com leitura sem bloqueio e escrita serializada.

    Leitores chamam get() e trabalham sobre o snapshot retornado; a troca
    do objeto é uma única atribuição, então nenhum leitor vê estado parcial.
    Escritores usam `with ref.lock:` quando precisam preparar o novo valor
    antes de publicá-lo (ex.: reload lendo arquivo).
    """

    def __init__(self, value):
        self._value = value
        self.lock = threading.RLock()

    def get(self):
        return self._value

    def set(self, value):
        with self.lock:
            previous = self._value
            self._value = value
            return previous
