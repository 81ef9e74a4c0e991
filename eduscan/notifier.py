"""
Notification dispatcher.

``compose`` asks the text collaborator for a parent message and falls back to
a fixed template on any failure, so a transition never ends up with an empty
message. ``deliver`` optionally hands the message to the outbound channel.
"""
import asyncio
import logging
from datetime import datetime

from eduscan.errors import TextGenerationError
from eduscan.models import UNKNOWN, DeliveryOutcome, NotificationEvent, Student, TransitionKind
from eduscan.services.delivery import DeliveryChannel, normalize_phone
from eduscan.services.text_generation import TextGenerator

logger = logging.getLogger(__name__)

GENERIC_GUARDIAN = "padre de familia"


def _guardian_label(student: Student) -> str:
    guardian = (student.guardian_name or "").strip()
    if not guardian or guardian == UNKNOWN:
        return GENERIC_GUARDIAN
    return guardian


def build_prompt(student: Student, kind: TransitionKind, time: str | None = None) -> str:
    guardian = _guardian_label(student)
    if kind == "Present":
        return (
            f"Genera un mensaje corto y profesional para un padre de familia llamado {guardian} "
            f"informando que su hijo(a) {student.name} ha ingresado a la institución a las {time}. "
            "El tono debe ser informativo y tranquilizador."
        )
    return (
        f"Genera un mensaje urgente pero cordial para un padre de familia llamado {guardian} "
        f"informando que su hijo(a) {student.name} no se ha registrado en la institución hoy. "
        "Solicita amablemente que se comunique para justificar la inasistencia."
    )


def fallback_message(student: Student, kind: TransitionKind, time: str | None = None) -> str:
    guardian = _guardian_label(student)
    if kind == "Present":
        return f"Hola {guardian}, le informamos que {student.name} ingresó a las {time or '--:--'}."
    return (
        f"Hola {guardian}, le informamos que {student.name} no se ha presentado hoy. "
        "Por favor contacte a la institución."
    )


def required_phrases(student: Student, kind: TransitionKind, time: str | None = None) -> list[str]:
    phrases = [student.name]
    if kind == "Present" and time:
        phrases.append(time)
    return phrases


def matches_exact_template(
    message: str,
    student: Student,
    kind: TransitionKind,
    time: str | None = None,
) -> bool:
    return all(phrase in message for phrase in required_phrases(student, kind, time))


def has_contact(contact: str | None) -> bool:
    value = (contact or "").strip()
    return bool(value) and value != UNKNOWN


class NotificationDispatcher:
    def __init__(
        self,
        generator: TextGenerator | None = None,
        *,
        channel: DeliveryChannel | None = None,
        timeout_seconds: float = 8.0,
        policy: str = "free",
        country_code: str = "51",
    ):
        self.generator = generator
        self.channel = channel
        self.timeout_seconds = timeout_seconds
        self.policy = policy
        self.country_code = country_code

    async def compose(self, student: Student, kind: TransitionKind, time: str | None = None) -> str:
        """Never raises; every failure resolves to the deterministic fallback."""
        if self.generator is None:
            return fallback_message(student, kind, time)

        prompt = build_prompt(student, kind, time)
        try:
            text = await asyncio.wait_for(self.generator.generate(prompt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Text generation timed out after %.1fs for %s", self.timeout_seconds, student.id)
            return fallback_message(student, kind, time)
        except TextGenerationError as e:
            logger.warning("Text generation failed for %s: %s", student.id, e.message)
            return fallback_message(student, kind, time)
        except Exception as e:
            logger.warning("Unexpected text generation error for %s: %s", student.id, e)
            return fallback_message(student, kind, time)

        text = (text or "").strip() if isinstance(text, str) else ""
        if not text:
            logger.warning("Text generation returned nothing for %s", student.id)
            return fallback_message(student, kind, time)

        if self.policy == "exact" and not matches_exact_template(text, student, kind, time):
            logger.info("Generated message for %s misses required phrases; using template", student.id)
            return fallback_message(student, kind, time)
        return text

    def deliver(self, contact: str | None, message: str) -> tuple[DeliveryOutcome, str | None]:
        if not has_contact(contact):
            return "no_contact", None
        if self.channel is None:
            return "skipped", None

        phone = normalize_phone(contact, self.country_code)
        if not phone:
            return "no_contact", None
        try:
            link = self.channel.send(phone, message)
        except Exception as e:
            logger.warning("Delivery hand-off failed for %s: %s", phone, e)
            return "failed", None
        return "handed_off", link

    def dispatch(
        self,
        student: Student,
        kind: TransitionKind,
        message: str,
        *,
        deliver: bool = True,
        created_at: datetime | None = None,
    ) -> NotificationEvent:
        """Optionally deliver an already composed message and describe the outcome."""
        outcome: DeliveryOutcome = "skipped"
        link = None
        if deliver:
            outcome, link = self.deliver(student.guardian_contact, message)
            if outcome == "no_contact":
                logger.warning("No contact on file for %s; message not delivered", student.id)
        return NotificationEvent(
            student_id=student.id,
            kind=kind,
            message=message,
            delivery=outcome,
            link=link,
            created_at=created_at or datetime.now(),
        )

    async def notify(
        self,
        student: Student,
        kind: TransitionKind,
        time: str | None = None,
        *,
        deliver: bool = True,
        created_at: datetime | None = None,
    ) -> NotificationEvent:
        message = await self.compose(student, kind, time)
        return self.dispatch(student, kind, message, deliver=deliver, created_at=created_at)
