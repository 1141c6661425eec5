"""License detection from LICENSE files.

Detection is keyword based: the text is normalised (lowercased, whitespace
collapsed) and matched against phrases distinctive of each license. License titles
are only looked for in the header of the file, as license texts often mention
other licenses further down.
"""

import re
from typing import Optional, Union

# (SPDX identifier, phrases that must all be present, only look at the header)
_LICENSE_SIGNATURES: list[tuple[str, list[str], bool]] = [
    ("AGPL-3.0", ["gnu affero general public license version 3"], True),
    ("LGPL-3.0", ["gnu lesser general public license version 3"], True),
    ("LGPL-2.1", ["gnu lesser general public license version 2.1"], True),
    ("LGPL-2.0", ["gnu library general public license version 2"], True),
    ("GPL-3.0", ["gnu general public license version 3"], True),
    ("GPL-2.0", ["gnu general public license version 2"], True),
    ("Apache-2.0", ["apache license version 2.0"], True),
    ("MPL-2.0", ["mozilla public license version 2.0"], True),
    ("EPL-2.0", ["eclipse public license - v 2.0"], True),
    ("EPL-1.0", ["eclipse public license - v 1.0"], True),
    ("BSL-1.0", ["boost software license - version 1.0"], True),
    ("CC0-1.0", ["cc0 1.0 universal"], True),
    ("Apache-2.0", ["licensed under the apache license, version 2.0"], False),
    ("Unlicense", ["this is free and unencumbered software released into the public domain"], False),
    ("ISC", ["permission to use, copy, modify, and/or distribute this software for any purpose"], False),
    (
        "BSD-3-Clause",
        [
            "redistribution and use in source and binary forms",
            "neither the name of",
        ],
        False,
    ),
    ("BSD-2-Clause", ["redistribution and use in source and binary forms"], False),
    ("MIT", ["permission is hereby granted, free of charge, to any person obtaining a copy"], False),
]

# Number of normalised characters considered the license header
_HEADER_SIZE = 500

# A short SPDX style header such as "SPDX-License-Identifier: MIT"
_SPDX_RE = re.compile(r"spdx-license-identifier:\s*([A-Za-z0-9.\-+]+)", re.IGNORECASE)


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower()).strip()


def detect(data: Union[bytes, str, None]) -> str:
    """Return the SPDX identifier of the license in ``data``, or "" if unknown."""
    if not data:
        return ""
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data

    spdx = _spdx_identifier(text)
    if spdx:
        return spdx

    normalized = _normalize(text)
    header = normalized[:_HEADER_SIZE]
    for spdx_id, phrases, header_only in _LICENSE_SIGNATURES:
        haystack = header if header_only else normalized
        if all(p in haystack for p in phrases):
            return spdx_id
    return ""


def _spdx_identifier(text: str) -> Optional[str]:
    match = _SPDX_RE.search(text)
    if match:
        return match.group(1)
    return None
