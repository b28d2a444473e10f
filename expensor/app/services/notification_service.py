"""
services/notification_service.py — Best-effort membership emails.

The membership routes hand a notice to the app's notifier AFTER the
membership change has been committed. Delivery is fire-and-forget:

  - notify() only queues the email on a small process-wide thread pool;
    the request thread never waits for the mail provider.
  - Every failure (rendering, provider error, network) is logged and
    swallowed. A notification can never change the outcome of the
    membership operation that triggered it.

Notifier implementations share one method, notify(notice):
  ResendNotifier — sends HTML email through the Resend API
  LogNotifier    — logs the notice; used when notifications are disabled

The active notifier lives in app.extensions["notifier"] (set by the app
factory) so tests can swap in a recording double.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol, Union

import resend
from markupsafe import escape

logger = logging.getLogger(__name__)


# ── Notices ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MemberAddedNotice:
    user_email: str
    user_name: str | None
    group_name: str
    admin_name: str | None
    admin_email: str
    group_link: str


@dataclass(frozen=True)
class MemberRemovedNotice:
    user_email: str
    user_name: str | None
    group_name: str
    admin_name: str | None
    admin_email: str


Notice = Union[MemberAddedNotice, MemberRemovedNotice]


class Notifier(Protocol):
    def notify(self, notice: Notice) -> None: ...


# ── Rendering ──────────────────────────────────────────────────────────────

def render_email(notice: Notice) -> dict:
    """Returns {"to", "subject", "html"} for a notice. User data is escaped."""
    user_name = escape(notice.user_name or notice.user_email)
    group_name = escape(notice.group_name)
    admin_name = escape(notice.admin_name or notice.admin_email)
    admin_email = escape(notice.admin_email)

    if isinstance(notice, MemberAddedNotice):
        subject = f"Sei stato aggiunto al gruppo: {notice.group_name} 🎉"
        html = f"""
            <div style="font-family: Arial, sans-serif; padding: 20px; color: #333;">
                <h2 style="color: #4CAF50;">Benvenuto nel gruppo!</h2>
                <p>Ciao <strong>{user_name}</strong>,</p>
                <p>Sei stato aggiunto con successo al gruppo di spesa <strong>"{group_name}"</strong> da {admin_name} ({admin_email}) su Expensor.</p>
                <p>Accedi subito per vedere le spese e aggiungere la tua parte.</p>
                <br/>
                <a href="{escape(notice.group_link)}" style="background-color: #4CAF50; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px;">Vai al Gruppo</a>
                <p style="font-size: 0.8rem; color: #999; margin-top: 30px;">Se pensi sia un errore, contatta l'amministratore del gruppo.</p>
            </div>
        """
    else:
        subject = f"‼️ Sei stato espulso dal gruppo: {notice.group_name} ‼️"
        html = f"""
            <div style="font-family: Arial, sans-serif; padding: 20px; color: #333;">
                <h2 style="color: #4CAF50;">ATTENZIONE!</h2>
                <p>Ciao <strong>{user_name}</strong>,</p>
                <p>Questa mail automatica ti è stata inviata per avvisarti della tua espulsione dal gruppo <strong>"{group_name}"</strong> su Expensor.</p>
                <p>La decisione della tua espulsione è a carico di {admin_name} ({admin_email})</p>
                <br/>
                <p style="font-size: 0.8rem; color: #999; margin-top: 30px;">Se pensi sia un errore, contatta l'amministratore del gruppo.</p>
            </div>
        """

    return {"to": notice.user_email, "subject": subject, "html": html}


# ── Notifiers ──────────────────────────────────────────────────────────────

class ResendNotifier:
    """
    Sends notices through Resend on a lazily created thread pool.

    The pool is created on the first notify() under a lock, so concurrent
    first requests share one executor.
    """

    def __init__(self, api_key: str, sender_email: str, max_workers: int = 2) -> None:
        resend.api_key = api_key
        self.sender_email = sender_email
        self.max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            with self._lock:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(
                        max_workers=self.max_workers,
                        thread_name_prefix="expensor-mail",
                    )
        return self._executor

    def notify(self, notice: Notice) -> Future:
        return self._get_executor().submit(self._send, notice)

    def _send(self, notice: Notice) -> bool:
        try:
            message = render_email(notice)
            params: resend.Emails.SendParams = {
                "from": f"Expensor App <{self.sender_email}>",
                "to": [message["to"]],
                "subject": message["subject"],
                "html": message["html"],
            }
            sent = resend.Emails.send(params)
        except Exception:
            logger.exception("Failed to send %s to %s", type(notice).__name__, notice.user_email)
            return False

        logger.info("Email sent to %s (id: %s)", notice.user_email, sent.get("id"))
        return True

    def shutdown(self) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None


class LogNotifier:
    """Stands in for email delivery when notifications are disabled."""

    def notify(self, notice: Notice) -> None:
        logger.info("Notification disabled; would send %s to %s", type(notice).__name__, notice.user_email)


def build_notifier(config) -> Notifier:
    """Picks the notifier for an app config mapping."""
    if config.get("NOTIFICATIONS_ENABLED") and config.get("RESEND_API_KEY"):
        return ResendNotifier(
            api_key=config["RESEND_API_KEY"],
            sender_email=config["SENDER_EMAIL"],
            max_workers=config.get("NOTIFICATION_WORKERS", 2),
        )
    return LogNotifier()


def dispatch(notifier: Notifier, notice: Notice | None) -> None:
    """
    Hands a notice to the notifier. Never raises: a failing notifier is logged
    and otherwise ignored.
    """
    if notice is None:
        return
    try:
        notifier.notify(notice)
    except Exception:
        logger.exception("Notifier failed to accept %s for %s", type(notice).__name__, notice.user_email)
