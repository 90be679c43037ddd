import logging
import sys

from dingtalk_proxy.constants import APP_HOST, APP_PORT, DEBUG_MODE
from dingtalk_proxy.controller import create_app
from dingtalk_proxy.errors import ConfigError, TemplateError
from dingtalk_proxy.utils import configure_logging

logger = logging.getLogger('dingtalk_proxy')


def main():
    configure_logging()
    logger.info("Iniciando alertmanager-dingtalk-proxy")
    try:
        app = create_app()
    except (ConfigError, TemplateError) as exc:
        logger.error("Falha na configuração inicial: %s", exc)
        sys.exit(1)

    logger.info("Escutando em %s:%s", APP_HOST, APP_PORT)
    # threaded=True: uma thread por requisição; use_reloader=False evita carregar a config duas vezes
    app.run(host=APP_HOST, port=APP_PORT, debug=DEBUG_MODE, threaded=True, use_reloader=False)


if __name__ == '__main__':
    main()
