"""
Portfolio templates.

Each template lays out the same sections (identity, summary, experience,
education, skills, projects) in its own arrangement. Plain text is escaped by
Jinja's autoescape; Markdown fields treat raw HTML as literal text and keep
only http(s) and mailto link targets. Empty sections are left out.
"""
import html
import re
from enum import Enum
from io import BytesIO
from pathlib import Path

import markdown
from jinja2 import Environment, FileSystemLoader
from loguru import logger
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor
from markdown.util import AMP_SUBSTITUTE
from markupsafe import Markup
from xhtml2pdf import pisa

from portfolio.errors import RenderError
from portfolio.validator import is_valid_url

TEMPLATES_DIR = Path(__file__).parent / "templates"

THEMES = {
    "theme-space": "Space",
    "theme-light": "Light",
    "theme-dark": "Dark",
    "theme-ocean": "Ocean",
}
DEFAULT_THEME = "theme-space"


class Template(str, Enum):
    MODERN = "modern"
    CLASSIC = "classic"
    BOLD = "bold"

    @classmethod
    def resolve(cls, name) -> "Template":
        try:
            return cls(name)
        except ValueError:
            return cls.MODERN


def resolve_theme(name) -> str:
    return name if name in THEMES else DEFAULT_THEME


SAFE_LINK_PREFIXES = ("http://", "https://", "mailto:")


def is_safe_link(value) -> bool:
    """Only http(s) and mailto targets survive. Entities are decoded and control characters and spaces ignored first."""
    text = html.unescape(str(value).replace(AMP_SUBSTITUTE, "&"))
    cleaned = "".join(ch for ch in text if ch.isprintable() and not ch.isspace())
    return cleaned.lower().startswith(SAFE_LINK_PREFIXES)


class SafeLinkTreeprocessor(Treeprocessor):
    def run(self, root):
        for element in root.iter():
            for attr in ("href", "src"):
                value = element.get(attr)
                if value is not None and not is_safe_link(value):
                    del element.attrib[attr]


class SafeMarkdownExtension(Extension):
    """Raw HTML is kept as literal text and unsafe link targets are dropped."""

    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block", strict=False)
        md.inlinePatterns.deregister("html", strict=False)
        # lowest priority: runs after inline links exist and escapes are restored
        md.treeprocessors.register(SafeLinkTreeprocessor(md), "safe_links", -1)


def markdown_to_html(text) -> Markup:
    if not text:
        return Markup("")
    return Markup(markdown.markdown(str(text), extensions=[SafeMarkdownExtension()]))


_env = Environment(loader=FileSystemLoader(str(TEMPLATES_DIR)), autoescape=True)
_env.filters["markdown"] = markdown_to_html
_env.tests["valid_url"] = lambda value: bool(value) and is_valid_url(value)


def _context(record: dict) -> dict:
    first = str(record.get("firstName") or "").strip()
    last = str(record.get("lastName") or "").strip()
    picture = str(record.get("profilePic") or "")
    if not picture.startswith(("data:image", "http://", "https://")):
        picture = ""
    return {
        "p": record,
        "full_name": f"{first} {last}".strip(),
        "title": record.get("portfolioTitle") or "Portfolio",
        "theme": resolve_theme(record.get("theme")),
        "picture": picture,
        "experience": record.get("experience") or [],
        "education": record.get("education") or [],
        "skills": record.get("skills") or [],
        "projects": record.get("projects") or [],
    }


def _template_renderer(filename: str):
    def render_template(record: dict) -> Markup:
        return Markup(_env.get_template(filename).render(**_context(record)))
    return render_template


RENDERERS = {
    Template.MODERN: _template_renderer("modern.html"),
    Template.CLASSIC: _template_renderer("classic.html"),
    Template.BOLD: _template_renderer("bold.html"),
}


def render(record: dict) -> Markup:
    """HTML fragment for a portfolio, in the template the record selects."""
    return RENDERERS[Template.resolve(record.get("template"))](record)


def render_page(record: dict) -> str:
    """Standalone HTML document, used by share links and PDF export."""
    return _env.get_template("page.html").render(
        title=record.get("portfolioTitle") or "Portfolio",
        theme=resolve_theme(record.get("theme")),
        content=render(record),
    )


def render_not_found() -> str:
    return _env.get_template("not_found.html").render()


# ------------------ PDF ------------------

def pdf_filename(record: dict) -> str:
    name = f"{record.get('firstName') or ''} {record.get('lastName') or ''}".strip()
    name = name or (record.get("portfolioTitle") or "").strip() or "portfolio"
    slug = re.sub(r"\s+", "-", name.lower())
    return f"{slug}.pdf"


def render_to_pdf(html: str, filename: str) -> tuple:
    buffer = BytesIO()
    try:
        status = pisa.CreatePDF(html, dest=buffer, encoding="utf-8")
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("PDF rendering crashed")
        raise RenderError(f"Could not create PDF: {exc}") from exc
    if status.err:
        logger.error("PDF rendering reported {} error(s)", status.err)
        raise RenderError("Could not create PDF.")
    return buffer.getvalue(), filename
