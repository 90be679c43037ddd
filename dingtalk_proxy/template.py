import logging
from typing import Optional

import jinja2
from jinja2.sandbox import ImmutableSandboxedEnvironment

from .errors import RenderError, TemplateError
from .models import KV, AlertGroupPayload, RenderedMessage
from .utils import AtomicRef, escape_markdown, format_timestamp, re_replace

logger = logging.getLogger(__name__)

# Blocos que todo template precisa definir
TITLE_BLOCK = 'title'
CONTENT_BLOCK = 'content'

DEFAULT_TEMPLATE_SOURCE = r'''
{% block title %}[{{ status | upper }}{% if status == 'firing' %}:{{ alerts.firing() | length }}{% endif %}] {{ group_labels.sorted_values() | join(' ') }}{% set extra = common_labels.remove(group_labels.names()) %}{% if extra %} ({{ extra.sorted_values() | join(' ') }}){% endif %}{% endblock %}

{% block content %}
#### \[{{ status | upper }}{% if status == 'firing' %}:{{ alerts.firing() | length }}{% endif %}\] **{{ group_labels.alertname or common_labels.alertname or receiver }}**
{% if summary %}

**Summary:** {{ summary }}
{% endif %}
{% if description %}

**Description:** {{ description }}
{% endif %}
{% for section, group in [('Firing', alerts.firing()), ('Resolved', alerts.resolved())] if group %}

**{{ section }}**
{% for alert in group %}

**Labels**
{% for name, value in alert.labels.sorted_pairs() %}
> - {{ name }}: {{ value | markdown }}
{% endfor %}
{% if alert.annotations %}

**Annotations**
{% for name, value in alert.annotations.sorted_pairs() %}
> - {{ name }}: {{ value | markdown }}
{% endfor %}
{% endif %}

**Starts at:** {{ alert.starts_at | timestamp }}
{% if alert.ends_at | timestamp %}
**Ends at:** {{ alert.ends_at | timestamp }}
{% endif %}
{% if alert.generator_url %}
**Source:** [{{ alert.generator_url }}]({{ alert.generator_url }})
{% endif %}
{% endfor %}
{% endfor %}
{% if external_url %}

[Alertmanager]({{ external_url }}/#/alerts?receiver={{ receiver | urlencode }})
{% endif %}
{% endblock %}
'''


class AlertSandbox(ImmutableSandboxedEnvironment):
    """
    Sandbox em que chaves de labels/annotations têm prioridade sobre os
    métodos do dict: `labels.values` devolve a label "values", não o método.
    """

    def getattr(self, obj, attribute):
        if isinstance(obj, KV) and attribute in obj:
            return obj[attribute]
        return super().getattr(obj, attribute)


def _build_environment() -> jinja2.Environment:
    # Sandbox imutável: template do operador não altera o payload nem acessa internals
    env = AlertSandbox(
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
        undefined=jinja2.Undefined,
    )
    env.filters['markdown'] = escape_markdown
    env.filters['timestamp'] = format_timestamp
    env.filters['re_replace'] = re_replace
    return env


_environment = _build_environment()


class CompiledTemplate:
    """Template Jinja2 já compilado e validado, reutilizável entre requisições."""

    def __init__(self, template: jinja2.Template, name: str = '<template>'):
        self._template = template
        self.name = name

    def __repr__(self) -> str:
        return f"CompiledTemplate({self.name!r})"

    def _render_block(self, block: str, context) -> str:
        return ''.join(self._template.blocks[block](context)).strip()

    def render(self, payload: AlertGroupPayload) -> RenderedMessage:
        context = self._template.new_context(payload.template_context())
        try:
            title = self._render_block(TITLE_BLOCK, context)
            text = self._render_block(CONTENT_BLOCK, context)
        except Exception as exc:
            # Código do template é fornecido pelo operador; qualquer falha vira RenderError
            raise RenderError(f"cannot render template {self.name}: {exc}") from exc
        return RenderedMessage(title=title, text=text)


def compile_template(source: str, name: str = '<template>') -> CompiledTemplate:
    try:
        template = _environment.from_string(source)
    except jinja2.TemplateError as exc:
        raise TemplateError(f"cannot parse template {name}: {exc}") from exc

    missing = [b for b in (TITLE_BLOCK, CONTENT_BLOCK) if b not in template.blocks]
    if missing:
        raise TemplateError(f"template {name} must define block(s): {', '.join(missing)}")
    return CompiledTemplate(template, name)


def render(compiled: CompiledTemplate, payload: AlertGroupPayload) -> RenderedMessage:
    return compiled.render(payload)


def default_template() -> CompiledTemplate:
    return compile_template(DEFAULT_TEMPLATE_SOURCE, name='default')


class TemplateStore:
    """Template ativo do processo; a troca só acontece se a compilação passar."""

    def __init__(self, compiled: Optional[CompiledTemplate] = None):
        self._ref = AtomicRef(compiled or default_template())

    @property
    def current(self) -> CompiledTemplate:
        return self._ref.get()

    def swap(self, source: str, name: str = '<template>') -> CompiledTemplate:
        compiled = compile_template(source, name)
        self._ref.set(compiled)
        logger.info("Template ativo substituído por %s", name)
        return compiled

    def load_file(self, filename: str) -> CompiledTemplate:
        try:
            with open(filename, 'r', encoding='utf-8') as fp:
                source = fp.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise TemplateError(f"cannot read template file {filename}: {exc}") from exc
        return self.swap(source, name=filename)

    def render(self, payload: AlertGroupPayload) -> RenderedMessage:
        return self.current.render(payload)
