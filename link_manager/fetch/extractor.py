"""
HTML to Markdown extraction.

The page title is read first, noisy structural elements are dropped, and
the main content container (or the whole body) is converted to Markdown
with html2text. The Markdown is then flattened for search: images become
short placeholders, links keep only their visible text, and runs of blank
lines are collapsed.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup
import html2text

from ..config import ExtractConfig
from ..core.errors import ExtractionError

ELLIPSIS = "..."

# Images are replaced before links so that [![alt](img)](href) collapses
# to the image placeholder instead of leaving a dangling link.
_MD_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_MD_LINK = re.compile(r"\[((?:[^\[\]]|\[[^\]]*\])*)\]\([^)]*\)")
_MD_AUTOLINK = re.compile(r"<((?:https?|ftp|mailto):[^>\s]+)>")
_MULTIPLE_BLANK_LINES = re.compile(r"\n[^\S\n]*(?:\n[^\S\n]*)+\n")


class Extractor:
    """Converts raw HTML into a title and a cleaned Markdown body."""

    def __init__(self, cfg: ExtractConfig | None = None):
        self.cfg = cfg or ExtractConfig()

    def extract(self, html: str, page_url: str) -> tuple[str, str]:
        """Extract the title and Markdown body of a page.

        Args:
            html: Raw HTML document
            page_url: URL the document was fetched from; relative links and
                images are resolved against it

        Returns:
            (title, markdown) where title is "" when the page has no <title>

        Raises:
            ExtractionError: The document could not be parsed or converted
        """
        if not isinstance(html, (str, bytes)):
            raise ExtractionError(f"failed to parse HTML: expected text, got {type(html).__name__}")
        try:
            soup = BeautifulSoup(html, "html.parser")
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(f"failed to parse HTML: {exc}") from exc

        title_tag = soup.find("title")
        title = title_tag.get_text().strip() if title_tag else ""

        # html.parser builds no <head>/<body> of its own, so head content
        # would otherwise reach the whole-document fallback
        for name in ("head", "title", *self.cfg.noise_tags):
            for tag in soup.find_all(name):
                tag.decompose()

        container = soup.select_one(", ".join(self.cfg.content_selectors))
        if container is None:
            container = soup.body or soup
        content_html = container.decode_contents()

        try:
            markdown = _html_to_markdown(content_html, page_url)
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(f"failed to convert HTML to markdown: {exc}") from exc

        return title, clean_markdown(markdown)

    def truncate(self, text: str, max_length: int | None = None) -> str:
        return truncate_text(text, max_length if max_length is not None else self.cfg.max_content_chars)


def _html_to_markdown(content_html: str, page_url: str) -> str:
    converter = html2text.HTML2Text(baseurl=page_url)
    converter.body_width = 0
    converter.ignore_links = False
    converter.use_automatic_links = False
    converter.ignore_images = False
    converter.ignore_tables = False
    return converter.handle(content_html)


def _image_placeholder(match: re.Match[str]) -> str:
    alt = match.group(1).strip()
    if alt:
        return f"[image: {alt}]"
    return "[image]"


def clean_markdown(markdown: str) -> str:
    """Flatten Markdown for storage and search.

    Image references become ``[image: alt]`` (or ``[image]``), link and
    autolink syntax is reduced to the visible text, blank-line runs collapse
    to a single blank line, and the result is stripped.
    """
    markdown = _MD_IMAGE.sub(_image_placeholder, markdown)
    markdown = _MD_LINK.sub(r"\1", markdown)
    markdown = _MD_AUTOLINK.sub(r"\1", markdown)
    markdown = _MULTIPLE_BLANK_LINES.sub("\n\n", markdown)
    return markdown.strip()


def truncate_text(text: str, max_length: int) -> str:
    """Truncate text to ``max_length`` at a word boundary.

    The cut backs up to the last space only when that space lies past the
    midpoint, so a long unbroken token is cut rather than dropped.
    """
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length // 2:
        truncated = truncated[:last_space]

    return truncated + ELLIPSIS
