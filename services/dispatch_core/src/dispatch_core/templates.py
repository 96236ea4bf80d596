"""Message templates: lookup by name and channel, Jinja2 rendering."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from jinja2 import StrictUndefined, TemplateError as JinjaTemplateError
from jinja2.sandbox import SandboxedEnvironment
from sqlalchemy.orm import Session, sessionmaker

from dispatch_shared.db.repositories import TemplateRepository

from dispatch_core.exceptions import TemplateError

# Message bodies are plain text (SMS, WhatsApp, text/plain email), so no
# HTML autoescaping.
_env = SandboxedEnvironment(
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)


@dataclass(frozen=True, slots=True)
class TemplateSource:
    body_template: str
    subject_template: str | None = None


@dataclass(frozen=True, slots=True)
class RenderedContent:
    body: str
    subject: str | None = None


def render_template(template_str: str, context: dict[str, Any]) -> str:
    """Render a Jinja2 template string with the given context.

    Uses SandboxedEnvironment to prevent SSTI and StrictUndefined to raise
    on missing variables. Raises TemplateError on any rendering failure.
    """
    try:
        return _env.from_string(template_str).render(context)
    except JinjaTemplateError as exc:
        raise TemplateError(f"Template rendering failed: {exc}") from exc


class TemplateCatalog(ABC):
    """Source of message templates keyed by (name, channel)."""

    @abstractmethod
    def get(self, name: str, channel: str) -> TemplateSource | None:
        """Return the active template, or None if there is none."""

    def render(
        self, name: str, channel: str, context: dict[str, Any]
    ) -> RenderedContent:
        """Render template *name* for *channel*.

        Raises TemplateError if the template does not exist or fails to render.
        """
        source = self.get(name, channel)
        if source is None:
            raise TemplateError(f"No active template {name!r} for channel {channel!r}")
        subject = None
        if source.subject_template:
            subject = render_template(source.subject_template, context)
        return RenderedContent(
            body=render_template(source.body_template, context), subject=subject
        )


class InMemoryTemplateCatalog(TemplateCatalog):
    def __init__(self) -> None:
        self._templates: dict[tuple[str, str], TemplateSource] = {}

    def add(
        self,
        name: str,
        channel: str,
        body_template: str,
        subject_template: str | None = None,
    ) -> None:
        self._templates[(name, channel)] = TemplateSource(
            body_template=body_template, subject_template=subject_template
        )

    def get(self, name: str, channel: str) -> TemplateSource | None:
        return self._templates.get((name, channel))


class SqlTemplateCatalog(TemplateCatalog):
    """Templates from the ``message_templates`` table (active rows only)."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, name: str, channel: str) -> TemplateSource | None:
        with self._session_factory() as session:
            row = TemplateRepository(session).get_by_name_and_channel(name, channel)
            if row is None:
                return None
            return TemplateSource(
                body_template=row.body_template,
                subject_template=row.subject_template,
            )
