"""
Text Sanitizer

Cleans scraped page text before chunking. Navigation cruft, tracking URLs,
contact emails and long opaque tokens (hashes, file paths, base64 blobs)
pollute embeddings, so they are stripped here without needing an HTML
parser.

Rules (applied in order):
-------------------------
1. Remove http(s) URLs and bare www. URLs
2. Remove email addresses
3. Drop whitespace-separated tokens that look like noise:
   - longer than 30 characters
   - path-like (contains "/" with more than one segment)
   - longer than 20 characters and purely alphanumeric (hash/id)
   - more than half non-alphanumeric characters
4. Rejoin with single spaces and trim
5. Remove any remaining non-whitespace run longer than 50 characters

sanitize() is pure and idempotent: sanitize(sanitize(x)) == sanitize(x).
"""

import re


URL_PATTERN = re.compile(r'https?://\S+', re.IGNORECASE)
WWW_PATTERN = re.compile(r'\bwww\.\S+', re.IGNORECASE)
EMAIL_PATTERN = re.compile(r'[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}')
WHITESPACE_PATTERN = re.compile(r'\s+')
LONG_RUN_PATTERN = re.compile(r'\S{51,}')

MAX_TOKEN_LENGTH = 30
MAX_ALNUM_TOKEN_LENGTH = 20
MAX_SYMBOL_RATIO = 0.5


def _is_noise_token(token: str) -> bool:
    """Return True if a whitespace-delimited token should be dropped."""
    if len(token) > MAX_TOKEN_LENGTH:
        return True

    if "/" in token:
        segments = [segment for segment in token.split("/") if segment]
        if len(segments) > 1:
            return True

    if len(token) > MAX_ALNUM_TOKEN_LENGTH and token.isalnum():
        return True

    symbols = sum(1 for char in token if not char.isalnum())
    if symbols / len(token) > MAX_SYMBOL_RATIO:
        return True

    return False


def sanitize(text: str) -> str:
    """
    Strip URLs, emails and non-meaningful tokens from scraped text.

    Args:
        text: Raw scraped text (markdown)

    Returns:
        Cleaned text with single spaces between surviving tokens.
        Empty input returns an empty string.
    """
    if not text:
        return ""

    text = URL_PATTERN.sub(' ', text)
    text = WWW_PATTERN.sub(' ', text)
    text = EMAIL_PATTERN.sub(' ', text)

    tokens = [token for token in text.split() if not _is_noise_token(token)]
    text = WHITESPACE_PATTERN.sub(' ', " ".join(tokens)).strip()

    text = LONG_RUN_PATTERN.sub('', text)
    return WHITESPACE_PATTERN.sub(' ', text).strip()
