"""
Template rendering contract.

The framework does not render HTML itself. A server is given a renderer,
any callable taking a view name and a context mapping and returning HTML:

    def render(template: str, context: Dict[str, Any]) -> str: ...

    server = HTTPServer(config, renderer=render)

Exceptions raised by a renderer are caught by Response and turned into a
generic 500; the page never shows a traceback.
"""

import html
from string import Template
from typing import Any, Callable, Dict, Mapping


Renderer = Callable[[str, Dict[str, Any]], str]


class TemplateRenderError(Exception):
    """A view could not be rendered (unknown template, missing variable)."""

    def __init__(self, template: str, reason: str):
        super().__init__(f"Cannot render {template!r}: {reason}")
        self.template = template
        self.reason = reason


class StringTemplateRenderer:
    """
    Minimal renderer over string.Template sources, keyed by view name.

        renderer = StringTemplateRenderer({
            "ErrorView": "<h1>$statusCode</h1><p>$message</p>",
        })

    Values are HTML-escaped; None renders as an empty string.
    """

    def __init__(self, templates: Mapping[str, str]):
        self.templates = {name: Template(source) for name, source in templates.items()}

    def __call__(self, template: str, context: Dict[str, Any]) -> str:
        source = self.templates.get(template)
        if source is None:
            raise TemplateRenderError(template, "unknown template")

        values = {
            key: "" if value is None else html.escape(str(value))
            for key, value in context.items()
        }

        try:
            return source.substitute(values)
        except (KeyError, ValueError) as e:
            raise TemplateRenderError(template, f"missing or bad placeholder {e}") from e
