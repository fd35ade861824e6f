"""Article extractor that fetches a web page and picks out its readable text."""

import logging
from urllib.parse import urlparse

from lxml import etree
from lxml import html as lxml_html

from article_podcaster.exceptions import InvalidURLError, NoContentError
from article_podcaster.transformers import text_normalizer
from schemas.extracted_article import ExtractedArticle

from .client import Client

logger = logging.getLogger(__name__)

# Elements that never hold article prose.
NOISE_XPATH = (
    "//script | //style | //noscript | //nav | //header | //footer"
    " | //aside | //form | //figure | //iframe"
)
CONTAINER_XPATHS = ("//article", "//main", "//body")
BLOCK_XPATH = ".//h1 | .//h2 | .//h3 | .//p | .//blockquote[not(.//p)] | .//li[not(.//p)]"


class ArticleExtractor(Client):
    """Fetch an article page and reduce it to title, byline and paragraphs.

    Metadata comes from Open Graph and standard meta tags; body text is the
    block-level content of the first ``<article>``, ``<main>`` or ``<body>``
    element, run through the text normalizer.

    Example:
        async with ArticleExtractor() as extractor:
            article = await extractor.extract("https://example.com/story")
    """

    async def extract(self, url: str) -> ExtractedArticle:
        """Fetch and parse one article.

        Raises:
            InvalidURLError: If the URL is not an absolute http(s) URL
            NoContentError: If the page has no readable text
            ClientError: If the page cannot be fetched
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidURLError()

        response = await self.get(url)
        logger.debug(f"Fetched {len(response.content)} bytes from {url}")
        return self.parse(response.text, fallback_title=parsed.hostname or url)

    def parse(self, page: str, fallback_title: str = "") -> ExtractedArticle:
        """Extract an article from HTML markup.

        Raises:
            NoContentError: If the markup yields no readable text
        """
        if not page.strip():
            raise NoContentError()
        try:
            document = lxml_html.fromstring(page)
        except (etree.ParserError, ValueError) as e:
            raise NoContentError() from e

        title = (
            _meta(document, "og:title")
            or _first_text(document, "//title")
            or _first_text(document, "//h1")
            or fallback_title
        )
        author = _meta(document, "author") or _meta(document, "article:author")
        excerpt = _meta(document, "og:description") or _meta(document, "description")

        for element in document.xpath(NOISE_XPATH):
            element.drop_tree()

        content = text_normalizer.clean(_body_markup(document))
        if not content:
            raise NoContentError()

        return ExtractedArticle(
            title=text_normalizer.clean(title),
            author=text_normalizer.clean(author) if author else None,
            content=content,
            excerpt=text_normalizer.clean(excerpt) if excerpt else None,
        )


def _meta(document, key: str) -> str | None:
    values = document.xpath(
        "//meta[@property=$key or @name=$key]/@content", key=key
    )
    for value in values:
        if value.strip():
            return value.strip()
    return None


def _first_text(document, xpath: str) -> str | None:
    for element in document.xpath(xpath):
        text = element.text_content().strip()
        if text:
            return text
    return None


def _body_markup(document) -> str:
    """Block-level markup of the main container, one block per paragraph."""
    for container_xpath in CONTAINER_XPATHS:
        containers = document.xpath(container_xpath)
        if not containers:
            continue
        container = containers[0]
        blocks = container.xpath(BLOCK_XPATH)
        if blocks:
            return "\n\n".join(
                etree.tostring(block, encoding="unicode", method="html", with_tail=False)
                for block in blocks
            )
        return container.text_content()
    return document.text_content()
