"""JSON logs for the cash-in bridge.

Every record carries the caller's correlation id plus the payment id and
Paypack ref currently being handled, so the initiate and webhook halves of one
payment can be joined in the log store.
"""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from pushpay.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
payment_id_ctx: ContextVar[str] = ContextVar("payment_id", default="")
external_ref_ctx: ContextVar[str] = ContextVar("external_ref", default="")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service_name)s %(trace_id)s %(payment_id)s %(external_ref)s %(message)s"


class PaymentContextFilter(logging.Filter):
    """Stamp the current request's payment identifiers onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.payment_id = payment_id_ctx.get()
        record.external_ref = external_ref_ctx.get()
        return True


def configure_logging(level: str | None = None) -> None:
    """Send records from every propagating logger through one JSON stdout handler."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = PaymentContextFilter()
    handler.addFilter(context_filter)
    handler.setFormatter(JsonFormatter(LOG_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level or settings.log_level)


logger = logging.getLogger("pushpay")
