"""Generated image extraction from model output."""

import re

MARKDOWN_IMAGE_RE = re.compile(r"!\[[^\]]*\]\((data:image/[^)]+)\)")


def extract_markdown_images(content: str) -> tuple[str, list[str]]:
    """Pull markdown-embedded data-URI images out of ``content``.

    Returns:
        The content with the image markdown removed and trimmed, and the image
        data URIs in order of appearance. Content without images is returned
        unchanged.
    """
    images = MARKDOWN_IMAGE_RE.findall(content)
    if not images:
        return content, []
    return MARKDOWN_IMAGE_RE.sub("", content).strip(), images
