import logging
from typing import Optional

from flask import Flask, jsonify, request

from .config import ProfileStore, ProfileTable, load_file
from .constants import CONFIG_FILE, DING_TIMEOUT_SECONDS, SERVICE_NAME, TEMPLATE_FILE, URL_PREFIX
from .errors import ConfigError, PayloadError, ProxyError
from .models import AlertGroupPayload
from .services import Dispatcher, DispatchOutcome
from .template import TemplateStore

logger = logging.getLogger(__name__)


class WebhookResource:
    """Liga o Dispatcher ao contrato HTTP: decodifica, despacha e mapeia o resultado."""

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    def reload(self, table: ProfileTable) -> None:
        self.dispatcher.profiles.replace(table)

    def send(self, profile: str, raw_payload) -> DispatchOutcome:
        payload = AlertGroupPayload.from_dict(raw_payload)
        return self.dispatcher.dispatch(profile, payload)


def _outcome_response(outcome: DispatchOutcome):
    body = {'status': 'ok' if outcome.ok else 'error', 'detail': outcome.detail}
    return jsonify(body), outcome.status_code


def create_app(config_file: Optional[str] = CONFIG_FILE, template_file: Optional[str] = TEMPLATE_FILE,
               timeout: float = DING_TIMEOUT_SECONDS, url_prefix: str = URL_PREFIX):
    """
    Cria o Flask app. Erros de configuração ou template aqui são fatais
    (ConfigError / TemplateError sobem para quem chamou).
    """
    templates = TemplateStore()
    if template_file:
        templates.load_file(template_file)
        logger.info("Usando template customizado %s", template_file)
    else:
        logger.info("Usando template padrão")

    logger.info("Carregando arquivo de configuração %s", config_file)
    table = load_file(config_file)
    logger.info("Profiles em uso: %s", sorted(table))
    profiles = ProfileStore(table, config_file=config_file)

    resource = WebhookResource(Dispatcher(profiles, templates, timeout=timeout))

    app = Flask(__name__)
    app.extensions['dingtalk_resource'] = resource

    @app.errorhandler(ProxyError)
    def proxy_error(exc):
        logger.error("Erro não tratado no proxy: %s", exc)
        return jsonify({'status': 'error', 'detail': str(exc)}), 500

    @app.route('/health', methods=['GET'])
    def health():
        return {'status': 'ok', 'service': SERVICE_NAME}, 200

    @app.route('/-/reload', methods=['GET', 'POST'])
    @app.route('/reload', methods=['GET', 'POST'])
    def reload():
        try:
            profiles.reload()
        except ConfigError as exc:
            return jsonify({'status': 'failed', 'error': str(exc)}), 500
        return jsonify({'status': 'ok', 'profiles': sorted(profiles.snapshot())}), 200

    @app.route(f'{url_prefix}/<profile>/send', methods=['POST'])
    @app.route(f'{url_prefix}/<profile>', methods=['POST'])
    def send(profile):
        data = request.get_json(force=True, silent=True)
        if data is None:
            logger.warning("Corpo inválido para profile '%s': JSON do Alertmanager não decodificável", profile)
            return jsonify({'status': 'error', 'detail': 'cannot decode alertmanager webhook JSON request'}), 400
        logger.debug("Received data for profile %s: %s", profile, data)

        try:
            outcome = resource.send(profile, data)
        except PayloadError as exc:
            logger.warning("Payload rejeitado para profile '%s': %s", profile, exc)
            return jsonify({'status': 'error', 'detail': str(exc)}), 400
        return _outcome_response(outcome)

    return app
