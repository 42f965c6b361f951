"""Tests for wrapping, kinsoku correction and shrink-to-fit."""

import pytest

from slidesmith.text_fitter import (
    ELLIPSIS,
    FORBIDDEN_LEADING,
    FULLWIDTH_SPACE,
    RenderCache,
    TextFitter,
    clean_bullet,
    split_bold_runs,
)

SAMPLES = [
    "hello world foo",
    "Revenue grew 15% year over year, driven by 3.5x expansion in enterprise accounts.",
    "売上は前年比で大きく伸び、特に新規顧客の獲得が全体の成長を牽引しました。今後も継続的な投資を行います。",
    "A" * 60,
    "first paragraph\nsecond paragraph that is rather long",
]


class TestWrap:
    """Tests for TextFitter.wrap."""

    def setup_method(self):
        self.fitter = TextFitter(RenderCache())

    def test_wraps_at_space(self):
        assert self.fitter.wrap("hello world foo", 11) == "hello world\nfoo"

    def test_empty(self):
        assert self.fitter.wrap("", 10) == ""
        assert self.fitter.wrap(None, 10) == ""

    def test_blank_paragraphs_kept(self):
        wrapped = self.fitter.wrap("a\n\nb", 10)
        assert wrapped == "a\n\nb"
        assert self.fitter.wrap(wrapped, 10) == wrapped
        assert self.fitter.wrap("hello world\n  \nfoo", 5) == "hello\nworld\n\nfoo"

    @pytest.mark.parametrize("text", SAMPLES)
    @pytest.mark.parametrize("width", [8, 16, 30])
    def test_idempotent_and_bounded(self, text, width):
        once = self.fitter.wrap(text, width)
        assert self.fitter.wrap(once, width) == once
        assert all(len(line) <= width for line in once.split("\n"))

    def test_keeps_decimal_together(self):
        wrapped = self.fitter.wrap("value 1234.56", 10)
        assert "1234.56" in wrapped.replace("\n", "") and not any(
            line.endswith(".") or line.startswith(".") for line in wrapped.split("\n")
        )

    def test_memoized_output_identical(self):
        text = SAMPLES[1]
        first = self.fitter.wrap(text, 20)
        hits = self.fitter.cache.hits
        second = self.fitter.wrap(text, 20)
        assert first == second
        assert self.fitter.cache.hits == hits + 1

    def test_cache_is_per_instance(self):
        other = TextFitter()
        self.fitter.wrap(SAMPLES[0], 11)
        assert len(other.cache) == 0


class TestKinsoku:
    """Tests for leading punctuation correction."""

    def test_moves_comma_to_previous_line(self):
        fixed = TextFitter.prevent_leading_punctuation("abc\n、def")
        assert fixed == "abc、\ndef"

    def test_keeps_indent(self):
        fixed = TextFitter.prevent_leading_punctuation(f"abc\n{FULLWIDTH_SPACE}。def")
        assert fixed.split("\n")[1] == f"{FULLWIDTH_SPACE}def"

    @pytest.mark.parametrize("text", SAMPLES)
    def test_no_line_starts_with_forbidden(self, text):
        fitter = TextFitter()
        wrapped = fitter.prevent_leading_punctuation(fitter.wrap(text, 9))
        for line in wrapped.split("\n"):
            stripped = line.lstrip(" \t" + FULLWIDTH_SPACE)
            assert not stripped or stripped[0] not in FORBIDDEN_LEADING


class TestBulletFormatting:
    """Tests for colon-separated bullets and quotation merging."""

    def setup_method(self):
        self.fitter = TextFitter()

    def test_colon_bullet_hangs_continuation(self):
        bullet = "売上：" + "新規顧客の獲得が全体の成長を牽引しました" * 2
        formatted = self.fitter.format_colon_separated_bullet(bullet, 12, 4)
        lines = formatted.split("\n")
        assert lines[0].startswith("売上：")
        assert len(lines) > 1
        assert all(line.startswith(FULLWIDTH_SPACE * 4) for line in lines[1:])

    def test_colon_bullet_without_separator_just_wraps(self):
        assert self.fitter.format_colon_separated_bullet("hello world foo", 11) == "hello world\nfoo"

    def test_merge_quoted_continuations(self):
        merged = TextFitter.merge_quoted_continuations(["彼は「こんにちは", "世界」と言った", "次"])
        assert merged == ["彼は「こんにちは世界」と言った", "次"]

    def test_prepare_bullets_for_template(self):
        prepared = TextFitter.prepare_bullets_for_template(["見出し：概要", "詳細A", "詳細B"], 2)
        assert prepared[0] == "見出し：概要"
        assert prepared[1] == FULLWIDTH_SPACE * 2 + "詳細A"

    def test_quote_lines_at_most_four(self):
        text = "「" + "継続は力なり。" * 12 + "」"
        formatted = self.fitter.format_quote_lines(text, 18)
        assert len(formatted.split("\n")) <= 4
        assert "「" not in formatted[:1]


class TestFitToLines:
    """Tests for shrink-to-fit."""

    def setup_method(self):
        self.fitter = TextFitter()

    def test_short_title_keeps_initial_size(self):
        result = self.fitter.fit_to_lines("Q1 Results", 32, 20, 40, 1, 24)
        assert result.font_size == 32
        assert result.line_count == 1

    def test_wrap_width_scales_with_font_size(self):
        text = "Quarterly revenue and margin overview"
        result = self.fitter.fit_to_lines(text, 32, 12, 30, 1, 40)
        assert result.font_size == 12
        assert result.wrap_chars == 11
        assert result.line_count == 1
        assert result.text.endswith(ELLIPSIS)

    @pytest.mark.parametrize("text", SAMPLES)
    def test_fits_or_truncates_at_floor(self, text):
        result = self.fitter.fit_to_lines(text, 24, 18, 12, 2, 20)
        if result.line_count <= 2 and not result.text.endswith(ELLIPSIS):
            return
        assert result.font_size == 18
        assert result.text.endswith(ELLIPSIS)
        assert result.line_count <= 2

    def test_suppress_ellipsis_returns_overflow(self):
        result = self.fitter.fit_to_lines("A" * 200, 20, 18, 10, 1, suppress_ellipsis=True)
        assert not result.text.endswith(ELLIPSIS)
        assert result.line_count > 1

    def test_lower_floor_is_tried(self):
        text = "This sentence needs a smaller font to fit"
        result = self.fitter.fit_to_lines(text, 20, 19, 30, 1, min_font_floor=10)
        assert result.font_size <= 19

    def test_fit_bullets_to_lines(self):
        bullets = ["項目：" + "説明文" * 10, "短い"]
        result = self.fitter.fit_bullets_to_lines(bullets, 18, 12, 20, 3)
        assert result.font_size <= 18
        assert "短い" in result.text


class TestHelpers:
    """Tests for bold runs and bullet cleaning."""

    def test_split_bold_runs(self):
        runs = split_bold_runs("plain **strong** tail")
        assert [(r.text, r.bold) for r in runs] == [("plain ", False), ("strong", True), (" tail", False)]

    def test_split_bold_runs_leading(self):
        runs = split_bold_runs("**lead** rest")
        assert runs[0].bold and runs[0].text == "lead"

    def test_clean_bullet(self):
        assert clean_bullet("a **b**\n  c") == "a b c"
