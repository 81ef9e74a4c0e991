import asyncio
from datetime import datetime

from eduscan.errors import TextGenerationError
from eduscan.models import UNKNOWN, Student
from eduscan.notifier import NotificationDispatcher, build_prompt, fallback_message
from eduscan.services.delivery import DeliveryChannel, WhatsAppLinkChannel, normalize_phone
from eduscan.services.text_generation import TextGenerator


class StaticGenerator(TextGenerator):
    def __init__(self, text):
        self.text = text
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        return self.text


class FailingGenerator(TextGenerator):
    async def generate(self, prompt):
        raise TextGenerationError("quota exceeded")


class BrokenGenerator(TextGenerator):
    async def generate(self, prompt):
        raise RuntimeError("socket closed")


class SlowGenerator(TextGenerator):
    async def generate(self, prompt):
        await asyncio.sleep(5)
        return "too late"


class RecordingChannel(DeliveryChannel):
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, phone, message):
        if self.fail:
            raise OSError("browser blocked")
        self.sent.append((phone, message))
        return f"link:{phone}"


def _student(**overrides):
    data = {
        "id": "STU001",
        "name": "Ana García",
        "grade": "5to A",
        "guardian_name": "Carlos García",
        "guardian_contact": "+51 987654321",
    }
    data.update(overrides)
    return Student(**data)


def test_compose_uses_generated_text():
    generator = StaticGenerator("  Estimado Carlos, Ana llegó.  ")
    dispatcher = NotificationDispatcher(generator)
    message = asyncio.run(dispatcher.compose(_student(), "Present", "07:45"))
    assert message == "Estimado Carlos, Ana llegó."
    assert "Carlos García" in generator.prompts[0]
    assert "07:45" in generator.prompts[0]


def test_compose_without_generator_uses_template():
    dispatcher = NotificationDispatcher(None)
    message = asyncio.run(dispatcher.compose(_student(), "Present", "07:45"))
    assert message == "Hola Carlos García, le informamos que Ana García ingresó a las 07:45."


def test_compose_falls_back_on_generator_error():
    dispatcher = NotificationDispatcher(FailingGenerator())
    message = asyncio.run(dispatcher.compose(_student(), "Absent"))
    assert message == fallback_message(_student(), "Absent")
    assert "no se ha presentado hoy" in message


def test_compose_falls_back_on_unexpected_error():
    dispatcher = NotificationDispatcher(BrokenGenerator())
    message = asyncio.run(dispatcher.compose(_student(), "Present", "08:00"))
    assert message == fallback_message(_student(), "Present", "08:00")


def test_compose_falls_back_on_timeout():
    dispatcher = NotificationDispatcher(SlowGenerator(), timeout_seconds=0.05)
    message = asyncio.run(dispatcher.compose(_student(), "Present", "08:00"))
    assert message == fallback_message(_student(), "Present", "08:00")


def test_compose_falls_back_on_blank_text():
    dispatcher = NotificationDispatcher(StaticGenerator("   "))
    message = asyncio.run(dispatcher.compose(_student(), "Absent"))
    assert message == fallback_message(_student(), "Absent")


def test_exact_policy_rejects_text_missing_required_phrases():
    generator = StaticGenerator("Su hijo llegó temprano.")
    dispatcher = NotificationDispatcher(generator, policy="exact")
    message = asyncio.run(dispatcher.compose(_student(), "Present", "07:45"))
    assert message == fallback_message(_student(), "Present", "07:45")

    generator = StaticGenerator("Ana García ingresó a las 07:45. Saludos.")
    dispatcher = NotificationDispatcher(generator, policy="exact")
    message = asyncio.run(dispatcher.compose(_student(), "Present", "07:45"))
    assert message == "Ana García ingresó a las 07:45. Saludos."


def test_unknown_guardian_reads_as_generic_parent():
    student = _student(guardian_name=UNKNOWN)
    assert "padre de familia" in fallback_message(student, "Absent")
    assert UNKNOWN not in build_prompt(student, "Absent")


def test_normalize_phone():
    assert normalize_phone("987654321") == "51987654321"
    assert normalize_phone("+51 987 654 321") == "51987654321"
    assert normalize_phone("+1 (212) 555-1234") == "12125551234"
    assert normalize_phone("") == ""
    assert normalize_phone("987654321", country_code="34") == "34987654321"


def test_deliver_hands_off_normalized_phone():
    channel = RecordingChannel()
    dispatcher = NotificationDispatcher(channel=channel)
    outcome, link = dispatcher.deliver("987 654 321", "hola")
    assert outcome == "handed_off"
    assert link == "link:51987654321"
    assert channel.sent == [("51987654321", "hola")]


def test_deliver_outcomes_without_contact_or_channel():
    dispatcher = NotificationDispatcher(channel=RecordingChannel())
    assert dispatcher.deliver("", "hola") == ("no_contact", None)
    assert dispatcher.deliver(UNKNOWN, "hola") == ("no_contact", None)
    assert dispatcher.deliver("sin numero", "hola") == ("no_contact", None)

    dispatcher = NotificationDispatcher()
    assert dispatcher.deliver("987654321", "hola") == ("skipped", None)


def test_deliver_failure_is_reported_not_raised():
    dispatcher = NotificationDispatcher(channel=RecordingChannel(fail=True))
    assert dispatcher.deliver("987654321", "hola") == ("failed", None)


def test_dispatch_builds_event():
    channel = RecordingChannel()
    dispatcher = NotificationDispatcher(channel=channel)
    event = dispatcher.dispatch(_student(), "Present", "hola", deliver=True)
    assert event.student_id == "STU001"
    assert event.kind == "Present"
    assert event.delivery == "handed_off"
    assert event.link == "link:51987654321"

    event = dispatcher.dispatch(_student(), "Absent", "aviso", deliver=False)
    assert event.delivery == "skipped"
    assert len(channel.sent) == 1


def test_whatsapp_channel_builds_encoded_link():
    channel = WhatsAppLinkChannel(max_outbox=2)
    link = channel.send("51987654321", "Hola Ana & co")
    assert link == "https://wa.me/51987654321?text=Hola%20Ana%20%26%20co"
    channel.send("51900000001", "a")
    channel.send("51900000002", "b")
    assert len(channel.outbox) == 2
    assert channel.outbox[0]["phone"] == "51900000002"


def test_notify_composes_then_delivers():
    channel = RecordingChannel()
    dispatcher = NotificationDispatcher(FailingGenerator(), channel=channel)
    event = asyncio.run(dispatcher.notify(_student(), "Absent"))
    assert event.message == fallback_message(_student(), "Absent")
    assert event.delivery == "handed_off"
    assert channel.sent == [("51987654321", event.message)]


def test_dispatch_uses_given_timestamp():
    stamp = datetime(2026, 3, 2, 7, 45)
    event = NotificationDispatcher().dispatch(_student(), "Present", "hola", created_at=stamp)
    assert event.created_at == stamp
