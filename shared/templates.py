"""
Notification message templates.

Each event kind has one title/body pair shared by both channels: the push
notification shows them as-is and the SMS joins them into a single line.
Templates support variable substitution using Python's string formatting.

Design decisions:
- Templates are stored as simple strings with {variable} placeholders
- One template per event kind; no per-locale variants
- SMS text is always "{title}: {body}" so the guardian sees the same words
  on both channels
"""

from dataclasses import dataclass
from typing import Optional

from shared.models import EventKind

DEFAULT_COMPARTMENT = "scheduled"


@dataclass(frozen=True)
class NotificationTemplate:
    """A title/body pair for one event kind."""
    kind: EventKind
    title: str
    body: str

    def render(self, **kwargs) -> tuple[str, str]:
        """
        Render the template with provided variables.

        Returns:
            Tuple of (title, body)
        """
        return self.title.format(**kwargs), self.body.format(**kwargs)


TEMPLATES: dict[EventKind, NotificationTemplate] = {
    EventKind.DOSE_TAKEN: NotificationTemplate(
        kind=EventKind.DOSE_TAKEN,
        title="Medicine Taken ✓",
        body="The patient has taken their medication on time.",
    ),
    EventKind.DOSE_MISSED: NotificationTemplate(
        kind=EventKind.DOSE_MISSED,
        title="Medicine Not Taken ⚠️",
        body="Missed {compartment} medication",
    ),
}


def get_template(kind: EventKind) -> Optional[NotificationTemplate]:
    """Get a template by event kind."""
    return TEMPLATES.get(kind)


def render_notification(kind: EventKind, compartment: Optional[str] = None) -> tuple[str, str]:
    """
    Render the title and body for an event.

    Raises:
        ValueError: If no template exists for the kind
    """
    template = get_template(kind)
    if template is None:
        raise ValueError(f"No template found for event kind: {kind}")
    return template.render(compartment=compartment or DEFAULT_COMPARTMENT)


def format_sms(title: str, body: str) -> str:
    """Single-line SMS text."""
    return f"{title}: {body}"
