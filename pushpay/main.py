"""Process entrypoint: `uvicorn pushpay.main:app`.

Missing Paypack credentials abort startup before the app is built.
"""

from pushpay.app import build_payment_service, create_app
from pushpay.common.config import load_credentials, settings
from pushpay.common.db import SessionLocal
from pushpay.common.logging import configure_logging
from pushpay.common.startup import log_startup_config
from pushpay.common.tracing import setup_tracing
from pushpay.services.notification.service import WebSocketHub

configure_logging()
setup_tracing(settings.service_name)
credentials = load_credentials()
log_startup_config(settings.service_name, settings, credentials)
hub = WebSocketHub()
service = build_payment_service(SessionLocal, credentials, settings, hub)
app = create_app(service, hub)
