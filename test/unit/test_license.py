"""Unit tests for license detection from LICENSE files."""

import pytest

from hubtracker.license import detect

APACHE = """
                                 Apache License
                           Version 2.0, January 2004
                        http://www.apache.org/licenses/

   TERMS AND CONDITIONS FOR USE, REPRODUCTION, AND DISTRIBUTION
"""

MIT = """MIT License

Copyright (c) 2020 Example

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
"""

GPL3 = """                    GNU GENERAL PUBLIC LICENSE
                       Version 3, 29 June 2007

 Copyright (C) 2007 Free Software Foundation, Inc. <https://fsf.org/>
""" + ("filler text " * 100) + """
  The GNU General Public License does not permit incorporating your program
into proprietary programs. If your program is a subroutine library, you
may consider it more useful to permit linking proprietary applications with
the library. If this is what you want to do, use the GNU Lesser General
Public License instead of this License. But first, please read
the GNU Lesser General Public License version 3.
"""

BSD3 = """Copyright (c) Example
Redistribution and use in source and binary forms, with or without
modification, are permitted provided that the following conditions are met:
3. Neither the name of the copyright holder nor the names of its
   contributors may be used to endorse or promote products
"""


@pytest.mark.parametrize(
    "text,expected",
    [
        (APACHE, "Apache-2.0"),
        (MIT, "MIT"),
        (GPL3, "GPL-3.0"),
        (BSD3, "BSD-3-Clause"),
        ("SPDX-License-Identifier: MPL-2.0\n", "MPL-2.0"),
        ("All rights reserved.", ""),
        ("", ""),
    ],
)
def test_detect(text: str, expected: str) -> None:
    assert detect(text) == expected


def test_detect_bytes() -> None:
    assert detect(MIT.encode()) == "MIT"


def test_detect_none() -> None:
    assert detect(None) == ""
