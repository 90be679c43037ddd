import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Dict, Iterator, Optional
from urllib.parse import urlparse

import yaml

from .errors import ConfigError, ProfileNotFoundError
from .utils import AtomicRef

logger = logging.getLogger(__name__)


def _validate_url(profile: str, webhook_url: str) -> None:
    parsed = urlparse(webhook_url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ConfigError(f"webhook url of profile '{profile}' is not a valid http(s) url: {webhook_url}")


class ProfileTable(Mapping):
    """Mapa imutável profile -> webhook URL."""

    def __init__(self, profiles: Dict[str, str]):
        self._profiles = MappingProxyType(dict(profiles))

    def __getitem__(self, name: str) -> str:
        return self._profiles[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def __repr__(self) -> str:
        return f"ProfileTable({sorted(self._profiles)})"

    def lookup(self, name: str) -> str:
        try:
            return self._profiles[name]
        except KeyError:
            raise ProfileNotFoundError(name) from None


def load(raw: str) -> ProfileTable:
    """
    Faz o parse de um documento YAML no formato:

        profiles:
          ops: https://oapi.dingtalk.com/robot/send?access_token=xxx

    Qualquer entrada inválida rejeita o documento inteiro.
    """
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("config must be a mapping at top level")

    raw_profiles = data.get('profiles')
    if not raw_profiles:
        raise ConfigError("no ding profiles provided in config")
    if not isinstance(raw_profiles, dict):
        raise ConfigError("'profiles' must be a mapping of profile name to webhook url")

    profiles: Dict[str, str] = {}
    for name, webhook_url in raw_profiles.items():
        name = str(name).strip() if name is not None else ''
        if not name:
            raise ConfigError("profile part cannot be empty")
        if webhook_url is not None and not isinstance(webhook_url, str):
            raise ConfigError(f"webhook-url of profile '{name}' must be a string")
        webhook_url = (webhook_url or '').strip()
        if not webhook_url:
            raise ConfigError(f"webhook-url part of profile '{name}' cannot be empty")
        _validate_url(name, webhook_url)
        if name in profiles:
            raise ConfigError(f"duplicated profile: {name}")
        profiles[name] = webhook_url

    return ProfileTable(profiles)


def load_file(filename: str) -> ProfileTable:
    try:
        with open(filename, 'r', encoding='utf-8') as fp:
            content = fp.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read config file {filename}: {exc}") from exc
    return load(content)


class ProfileStore:
    """Detém a tabela de profiles ativa; reload troca a tabela inteira."""

    def __init__(self, table: ProfileTable, config_file: Optional[str] = None):
        self._ref = AtomicRef(table)
        self.config_file = config_file

    def snapshot(self) -> ProfileTable:
        return self._ref.get()

    def lookup(self, name: str) -> str:
        return self.snapshot().lookup(name)

    def replace(self, table: ProfileTable) -> ProfileTable:
        if not isinstance(table, ProfileTable):
            raise TypeError(f"expected ProfileTable, got {type(table).__name__}")
        previous = self._ref.set(table)
        logger.info("Tabela de profiles substituída: %s", sorted(table))
        return previous

    def reload(self, filename: Optional[str] = None) -> ProfileTable:
        """Relê o arquivo e só publica a nova tabela se ela for válida."""
        filename = filename or self.config_file
        if not filename:
            logger.error("Reload pedido sem arquivo de configuração definido")
            raise ConfigError("no config file to reload from")
        # Lock segura reloads concorrentes em fila, sem intercalar leitura e troca
        with self._ref.lock:
            logger.info("Carregando arquivo de configuração %s", filename)
            try:
                table = load_file(filename)
            except ConfigError as exc:
                logger.error("Reload rejeitado, mantendo profiles atuais: %s", exc)
                raise
            self.replace(table)
            return table
