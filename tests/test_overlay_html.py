from __future__ import annotations

from models import Annotation, OverlayToken
from overlay import GLOSS_COLOR, overlay_html


def test_plain_text_is_escaped() -> None:
    html = overlay_html([OverlayToken("a < b & c\nnext")])

    assert html == "a &lt; b &amp; c<br>next"


def test_annotated_word_carries_gloss_and_reading() -> None:
    annotation = Annotation("algorithm", "アルゴリズム", "算法")
    html = overlay_html([OverlayToken("The "), OverlayToken("Algorithm", annotation)])

    assert html.startswith("The ")
    assert f'<span style="color: {GLOSS_COLOR};">Algorithm</span>' in html
    assert "算法 アルゴリズム</sup>" in html


def test_empty_tokens() -> None:
    assert overlay_html([]) == ""
