# Overview: Outbound delivery of sede access codes (SMTP or log-only).

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

from .errors import DeliveryFailed

logger = logging.getLogger(__name__)

EXTENSION_KEY = "docportal.notifier"


def render_token_message(sede_name: str, token: str, is_new: bool) -> tuple[str, str]:
    """Return (subject, plain-text body) for an access code mail."""
    state = "ha sido generado" if is_new else "sigue siendo valido"
    subject = f"Codigo de acceso para {sede_name}"
    body = (
        f"Su codigo de acceso para la sede {sede_name} es: {token}\n\n"
        f"Este codigo {state} para su sede.\n\n"
        "Como usar el codigo:\n"
        "1. Ingrese al portal de ordenes de compra\n"
        f"2. Seleccione su sede: {sede_name}\n"
        f"3. Ingrese el codigo: {token}\n"
        "4. Acceda a la informacion de sus ordenes\n\n"
        f"Este codigo es exclusivo para {sede_name} y no tiene vencimiento.\n"
        "Si tiene problemas para acceder, comuniquese con el administrador.\n"
    )
    return subject, body


class LogNotifier:
    """Records deliveries in the log without sending anything. Development default."""

    def send(self, email: str, sede_name: str, token: str, is_new: bool) -> None:
        logger.info(
            "Access code %s for sede %r addressed to %s (not sent, log notifier)",
            "issued" if is_new else "resent",
            sede_name,
            email,
        )


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        *,
        user: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        self.timeout = timeout

    def send(self, email: str, sede_name: str, token: str, is_new: bool) -> None:
        if not email:
            raise DeliveryFailed("No destination address for sede")

        subject, body = render_token_message(sede_name, token, is_new)
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = email
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.user:
                    smtp.starttls()
                    smtp.login(self.user, self.password or "")
                smtp.send_message(msg)
            logger.info("Access code mail sent to %s for sede %r", email, sede_name)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send access code to %s: %s", email, e)
            raise DeliveryFailed("Could not deliver the access code") from e


def build_notifier(config) -> LogNotifier | SmtpNotifier:
    backend = (config.get("NOTIFIER_BACKEND") or "log").lower()
    if backend == "smtp":
        return SmtpNotifier(
            config["SMTP_HOST"],
            int(config["SMTP_PORT"]),
            config["MAIL_FROM"],
            user=config.get("SMTP_USER"),
            password=config.get("SMTP_PASSWORD"),
            timeout=float(config.get("SMTP_TIMEOUT", 10)),
        )
    if backend == "log":
        return LogNotifier()
    raise ValueError(f"Unknown NOTIFIER_BACKEND {backend!r}")


def current_notifier():
    return current_app.extensions[EXTENSION_KEY]
