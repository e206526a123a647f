import pytest

WORDS = [
    "mail", "cdn", "static", "api", "shop", "news", "blog", "cloud", "data",
    "media", "secure", "login", "files", "images", "video", "search", "app",
    "dev", "test", "web", "edge", "assets", "store", "docs", "status",
]
TLDS = ["com", "net", "org", "io", "de", "co.uk", "fr", "jp", "info"]


def make_domains(count, seed=1234):
    """Newline separated host names, similar to a crawl list.

    Draws come from a plain 31-bit LCG rather than the random module so the
    text can be reproduced byte for byte by other FastLZ implementations.
    """
    state = seed

    def draw(n):
        nonlocal state
        state = (state * 1103515245 + 12345) & 0x7FFFFFFF
        return (state >> 8) % n

    lines = []
    for _ in range(count):
        parts = [WORDS[draw(len(WORDS))] for _ in range(1 + draw(3))]
        if draw(10) < 3:
            parts[-1] += str(draw(1000))
        lines.append(".".join(parts) + "." + TLDS[draw(len(TLDS))])
    return ("\n".join(lines) + "\n").encode("ascii")


@pytest.fixture(scope="session")
def corpus():
    return make_domains(8000)
