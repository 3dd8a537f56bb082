# SPDX-License-Identifier: AGPL-3.0-or-later
"""Side-effect intents and the ports that deliver them.

The engine never sends mail or renders invoices. It returns ``Intent`` values and
the caller hands them to ``dispatch_intents`` once the change has been committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Protocol

from bottleops import unilog

logger = logging.getLogger(__name__)

NOTIFY_CUSTOMER = "notify_customer"
GENERATE_INVOICE = "generate_invoice"


@dataclass(frozen=True)
class Intent:
    kind: str
    order_id: Optional[int]
    payload: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {"kind": self.kind, "order_id": self.order_id, "payload": dict(self.payload)}


class NotificationPort(Protocol):
    def notify(self, intent: Intent) -> None: ...


class InvoicePort(Protocol):
    def generate(self, intent: Intent) -> None: ...


class EventLogNotifier:
    """Records notification intents in the unified event log for an external mailer."""

    def notify(self, intent: Intent) -> None:
        unilog.write("intent.notify_customer", order_id=intent.order_id, payload=intent.payload)


class EventLogInvoicer:
    def generate(self, intent: Intent) -> None:
        unilog.write("intent.generate_invoice", order_id=intent.order_id, payload=intent.payload)


@dataclass
class Ports:
    notifier: NotificationPort
    invoicer: InvoicePort


def default_ports() -> Ports:
    return Ports(notifier=EventLogNotifier(), invoicer=EventLogInvoicer())


def dispatch_intents(intents: Iterable[Intent], ports: Ports | None = None) -> int:
    """Deliver intents; returns how many were accepted.

    A port failure is logged and skipped. The lifecycle change that produced the
    intent has already committed and stays committed.
    """
    ports = ports or default_ports()
    delivered = 0
    for intent in intents:
        try:
            if intent.kind == NOTIFY_CUSTOMER:
                ports.notifier.notify(intent)
            elif intent.kind == GENERATE_INVOICE:
                ports.invoicer.generate(intent)
            else:
                logger.warning("unknown intent kind %s for order %s", intent.kind, intent.order_id)
                continue
            delivered += 1
        except Exception:
            logger.exception("intent %s for order %s failed", intent.kind, intent.order_id)
    return delivered


__all__ = [
    "EventLogInvoicer",
    "EventLogNotifier",
    "GENERATE_INVOICE",
    "Intent",
    "InvoicePort",
    "NOTIFY_CUSTOMER",
    "NotificationPort",
    "Ports",
    "default_ports",
    "dispatch_intents",
]
