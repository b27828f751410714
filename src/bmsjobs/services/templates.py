"""Jinja2 rendering of notification emails.

Each TemplateKind ships three files under templates/email/:
    <kind>.subject.txt   one-line subject
    <kind>.txt           plain text body
    <kind>.html          HTML body

An optional override directory is searched before the packaged templates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    select_autoescape,
)

if TYPE_CHECKING:
    from bmsjobs.db.models.base import TemplateKind


@dataclass(frozen=True, slots=True)
class RenderedEmail:
    subject: str
    text_body: str
    html_body: str


class TemplateRenderer:
    """Renders subject and bodies for a template kind.

    Missing variables raise instead of rendering blanks, so a payload that
    does not fit its template fails the send permanently rather than
    mailing a half-empty reminder.
    """

    def __init__(self, templates_path: str | None = None) -> None:
        loaders: list[BaseLoader] = []
        if templates_path:
            loaders.append(FileSystemLoader(templates_path))
        loaders.append(PackageLoader("bmsjobs", "templates/email"))

        self._env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            keep_trailing_newline=False,
        )

    def render(
        self,
        template_kind: TemplateKind,
        context: dict[str, Any],
        subject: str | None = None,
    ) -> RenderedEmail:
        """Render an email.

        Args:
            template_kind: Which template set to use.
            context: Template variables (notification payload plus recipient_name).
            subject: Explicit subject; rendered from the template when None.

        Raises:
            jinja2.TemplateError: On missing templates or undefined variables.
        """
        name = template_kind.value
        if subject is None:
            subject = self._env.get_template(f"{name}.subject.txt").render(**context)
        text_body = self._env.get_template(f"{name}.txt").render(**context)
        html_body = self._env.get_template(f"{name}.html").render(**context)
        return RenderedEmail(
            subject=" ".join(subject.split()),
            text_body=text_body,
            html_body=html_body,
        )
