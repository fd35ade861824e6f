"""Result of the extraction phase."""

from pydantic import BaseModel


class ExtractedArticle(BaseModel):
    """Readable content pulled out of an article page.

    Attributes:
        title: Article headline
        author: Byline, if the page declares one
        content: Cleaned plain text, paragraphs separated by blank lines
        excerpt: Short summary, if the page declares one
    """

    title: str
    author: str | None = None
    content: str
    excerpt: str | None = None
