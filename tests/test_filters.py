"""Tests for the drop filter."""

from __future__ import annotations

from bs4 import BeautifulSoup


def _first(html: str, name: str):
    return BeautifulSoup(html, "lxml").find(name)


class TestDropRules:
    def test_script_style_noscript_button_dropped(self):
        from confluence2md.extractors.filters import should_drop

        for name in ("script", "style", "noscript", "button"):
            assert should_drop(_first(f"<{name}>x</{name}>", name))

    def test_aria_hidden_dropped(self):
        from confluence2md.extractors.filters import should_drop

        assert should_drop(_first('<span aria-hidden="true">x</span>', "span"))
        assert not should_drop(_first('<span aria-hidden="false">x</span>', "span"))

    def test_inline_display_none_dropped(self):
        from confluence2md.extractors.filters import should_drop

        assert should_drop(_first('<p style="color: red; display : none">x</p>', "p"))
        assert should_drop(_first('<p style="visibility:hidden">x</p>', "p"))
        assert not should_drop(_first('<p style="color: red">x</p>', "p"))

    def test_denied_class_and_id(self):
        from confluence2md.extractors.filters import should_drop

        assert should_drop(_first('<div class="breadcrumb-section">x</div>', "div"))
        assert should_drop(_first('<div id="footer">x</div>', "div"))
        assert not should_drop(_first('<div class="footer-note">x</div>', "div"))

    def test_comment_dropped(self):
        from bs4 import Comment

        from confluence2md.extractors.filters import should_drop

        soup = BeautifulSoup("<p><!-- note -->text</p>", "lxml")
        comment = soup.find(string=lambda s: isinstance(s, Comment))
        assert should_drop(comment)

    def test_plain_content_kept(self):
        from confluence2md.extractors.filters import drop_reason

        assert drop_reason(_first("<p>hello</p>", "p")) is None


class TestScope:
    def test_outside_main_dropped(self):
        from confluence2md.extractors.filters import drop_reason

        assert drop_reason(_first("<p>hello</p>", "p"), in_main=False) == "outside main content"

    def test_text_outside_main_dropped(self):
        from confluence2md.extractors.filters import should_drop

        text = _first("<p>hello</p>", "p").string
        assert not should_drop(text, in_main=True)
        assert should_drop(text, in_main=False)

    def test_rule_reason_wins_over_scope(self):
        from confluence2md.extractors.filters import drop_reason

        assert drop_reason(_first("<script>x</script>", "script"), in_main=False) == "tag <script>"
