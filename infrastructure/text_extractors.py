# infrastructure/text_extractors.py
"""HTML text extraction for knowledge-base articles"""
import re
from pathlib import Path

from bs4 import BeautifulSoup

from core.domain import ExtractedDocument
from core.interfaces import ITextExtractor

# Elements whose text is never visible article content
NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]

_BLANK_LINES = re.compile(r"\n{3,}")


class HtmlTextExtractor(ITextExtractor):
    """
    Extracts <title> and the visible <body> text.

    Block boundaries become newlines and runs of blank lines collapse to a
    single paragraph break, so the splitter can cut on paragraphs.
    """

    def __init__(self, parser: str = "html.parser"):
        self.parser = parser

    def extract(self, raw: bytes, source_id: str) -> ExtractedDocument:
        soup = BeautifulSoup(raw, self.parser)
        for tag in soup(NON_CONTENT_TAGS):
            tag.decompose()

        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        if not title:
            title = Path(source_id).stem

        root = soup.body or soup
        return ExtractedDocument(title=title, body_text=self._clean(root.get_text(separator="\n")))

    @staticmethod
    def _clean(text: str) -> str:
        lines = [line.strip() for line in text.splitlines()]
        return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()
