"""
HTML to plain text conversion.

Chapters are stored as the HTML produced by the rich-text editor, but the
model should reason over prose. This mirrors what a browser's `textContent`
gives for a fragment, except that block boundaries and <br> become newlines
so paragraphs do not run together.
"""
from html.parser import HTMLParser
import re
from typing import List, Optional

BLOCK_TAGS = {
    'p', 'div', 'br', 'li', 'ul', 'ol', 'blockquote', 'pre',
    'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'hr', 'tr',
}

# Contents of these never show up in textContent of an editor fragment
SKIPPED_TAGS = {'script', 'style'}


class _TextExtractor(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in SKIPPED_TAGS:
            self._skip_depth += 1
        elif tag == 'br':
            self.parts.append('\n')

    def handle_startendtag(self, tag, attrs):
        if tag == 'br':
            self.parts.append('\n')

    def handle_endtag(self, tag):
        if tag in SKIPPED_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in BLOCK_TAGS:
            self.parts.append('\n')

    def handle_data(self, data):
        if not self._skip_depth:
            self.parts.append(data)


def strip_html(html: Optional[str]) -> str:
    """Return the human-readable text of an HTML fragment"""
    if not html:
        return ""

    extractor = _TextExtractor()
    extractor.feed(html)
    extractor.close()

    text = ''.join(extractor.parts).replace('\xa0', ' ')
    # Collapse the blank runs left behind by nested block elements
    text = re.sub(r'[ \t]+\n', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()
