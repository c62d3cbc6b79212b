"""Developer portal scraping: the published versions of a package.

The portal has no JSON API for versions; its package page carries a
``<h5>Версия</h5>`` heading followed by a ``<select>`` of versions, newest
first.
"""

from __future__ import annotations

import re

from auroradeps.core.errors import RemoteError

_SECTION = re.compile(r"<h5>\s*Версия\s*</h5>\s*<select[^>]*>(.*?)</select>", re.DOTALL)
_OPTION_VALUE = re.compile(r"""<option[^>]*value=(?:"([^"]+)"|'([^']+)')""")
_OPTION_TEXT = re.compile(r"<option[^>]*>\s*([^<]+?)\s*</option>", re.DOTALL)


def parse_versions_html(html: str) -> list[str]:
    """Extract versions from a package page, in page order, deduplicated.

    Option ``value`` attributes are preferred; option text is the fallback.

    Examples
    --------
    >>> parse_versions_html(
    ...     '<h5>Версия</h5><select><option value="1.18.1">1.18.1</option>'
    ...     '<option value="1.17.3">1.17.3</option></select>')
    ['1.18.1', '1.17.3']
    """
    section = _SECTION.search(html)
    if section is None:
        raise RemoteError("Package page has no 'Версия' block")
    inner = section.group(1)

    versions: list[str] = []
    for match in _OPTION_VALUE.finditer(inner):
        value = (match.group(1) or match.group(2) or "").strip()
        if value and value not in versions:
            versions.append(value)

    if not versions:
        for match in _OPTION_TEXT.finditer(inner):
            value = match.group(1).strip()
            if value and value not in versions:
                versions.append(value)

    if not versions:
        raise RemoteError("Package page lists no versions")
    return versions
