import os

# Configurações globais de ambiente
CONFIG_FILE = os.getenv("CONFIG_FILE", "config.yml")
TEMPLATE_FILE = os.getenv("TEMPLATE_FILE", "").strip()
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8060"))
DEBUG_MODE = os.getenv("DEBUG_MODE", "False").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Prefixo onde os endpoints de profile são montados (POST <prefix>/<profile>/send)
URL_PREFIX = ("/" + os.getenv("URL_PREFIX", "/dingtalk").strip().strip("/")).rstrip("/")

# Timeout (segundos) da chamada ao webhook do DingTalk
DING_TIMEOUT_SECONDS = float(os.getenv("DING_TIMEOUT_SECONDS", "5"))

# Envelope esperado pela API de robôs do DingTalk
DING_MESSAGE_TYPE = "markdown"
DING_SUCCESS_ERRCODE = 0

SERVICE_NAME = "alertmanager-dingtalk-proxy"
