from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from .errors import PayloadError


class KV(dict):
    """
    Labels/annotations de um alerta.

    Acesso a chave inexistente dentro do template resulta em texto vazio;
    os helpers seguem os nomes usados nos templates do Alertmanager.
    Nos templates uma label com nome de método (`values`, `items`, `names`...)
    vence o método em `labels.values`; fora do sandbox use `labels['values']`.
    """

    def sorted_pairs(self) -> List[Tuple[str, str]]:
        return sorted(self.items())

    def names(self) -> List[str]:
        return sorted(self.keys())

    def sorted_values(self) -> List[str]:
        return [v for _, v in self.sorted_pairs()]

    def remove(self, names: Iterable[str]) -> 'KV':
        drop = set(names)
        return KV((k, v) for k, v in self.items() if k not in drop)


def _kv(value: Any, field_name: str) -> KV:
    if value is None:
        return KV()
    if not isinstance(value, dict):
        raise PayloadError(f"'{field_name}' must be an object")
    return KV((str(k), '' if v is None else str(v)) for k, v in value.items())


def _text(value: Any) -> str:
    return '' if value is None else str(value)


@dataclass(frozen=True)
class Alert:
    status: str = ''
    labels: KV = field(default_factory=KV)
    annotations: KV = field(default_factory=KV)
    starts_at: str = ''
    ends_at: str = ''
    generator_url: str = ''
    fingerprint: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Alert':
        if not isinstance(data, dict):
            raise PayloadError("each alert must be an object")
        return cls(
            status=_text(data.get('status')),
            labels=_kv(data.get('labels'), 'labels'),
            annotations=_kv(data.get('annotations'), 'annotations'),
            starts_at=_text(data.get('startsAt')),
            ends_at=_text(data.get('endsAt')),
            generator_url=_text(data.get('generatorURL')),
            fingerprint=_text(data.get('fingerprint')),
        )


class Alerts(tuple):
    """Sequência ordenada de alertas com filtros por status."""

    def firing(self) -> 'Alerts':
        return Alerts(a for a in self if a.status == 'firing')

    def resolved(self) -> 'Alerts':
        return Alerts(a for a in self if a.status == 'resolved')


@dataclass(frozen=True)
class AlertGroupPayload:
    """Payload do webhook do Alertmanager (version 4)."""

    status: str = ''
    receiver: str = ''
    alerts: Alerts = field(default_factory=Alerts)
    group_labels: KV = field(default_factory=KV)
    common_labels: KV = field(default_factory=KV)
    common_annotations: KV = field(default_factory=KV)
    external_url: str = ''
    version: str = ''
    group_key: str = ''
    truncated_alerts: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> 'AlertGroupPayload':
        if not isinstance(data, dict):
            raise PayloadError("payload must be a JSON object")
        raw_alerts = data.get('alerts') or []
        if not isinstance(raw_alerts, list):
            raise PayloadError("'alerts' must be a list")
        try:
            truncated = int(data.get('truncatedAlerts') or 0)
        except (TypeError, ValueError):
            raise PayloadError("'truncatedAlerts' must be an integer") from None
        return cls(
            status=_text(data.get('status')),
            receiver=_text(data.get('receiver')),
            alerts=Alerts(Alert.from_dict(a) for a in raw_alerts),
            group_labels=_kv(data.get('groupLabels'), 'groupLabels'),
            common_labels=_kv(data.get('commonLabels'), 'commonLabels'),
            common_annotations=_kv(data.get('commonAnnotations'), 'commonAnnotations'),
            external_url=_text(data.get('externalURL')),
            version=_text(data.get('version')),
            group_key=_text(data.get('groupKey')),
            truncated_alerts=truncated,
        )

    def template_context(self) -> Dict[str, Any]:
        return {
            'data': self,
            'status': self.status,
            'receiver': self.receiver,
            'alerts': self.alerts,
            'group_labels': self.group_labels,
            'common_labels': self.common_labels,
            'common_annotations': self.common_annotations,
            'summary': self.common_annotations.get('summary', ''),
            'description': self.common_annotations.get('description', ''),
            'external_url': self.external_url,
        }


@dataclass(frozen=True)
class RenderedMessage:
    title: str
    text: str

    def to_payload(self, msgtype: str = 'markdown') -> Dict[str, Any]:
        """Envelope JSON aceito pelo endpoint de robôs do DingTalk."""
        return {
            'msgtype': msgtype,
            msgtype: {
                'title': self.title,
                'text': self.text,
            },
        }
