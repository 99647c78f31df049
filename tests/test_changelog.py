import pytest

from release_monitor.summarization.changelog import (
    extract_bullets, is_mostly_uppercase, is_noise, strip_formatting
)


class TestStripFormatting:
    
    def test_replaces_links_with_visible_text(self):
        assert strip_formatting("See [the docs](https://example.com/docs) now") == "See the docs now"
    
    def test_removes_emphasis_and_code(self):
        assert strip_formatting("**Breaking:** `foo()` is ~~gone~~") == "Breaking: foo() is gone"
    
    def test_images_keep_alt_text(self):
        assert strip_formatting("![diagram](img.png) explained") == "diagram explained"
    
    def test_collapses_whitespace(self):
        assert strip_formatting("  a   b\t c  ") == "a b c"


class TestExtractBullets:
    
    def test_hash_like_lines_are_filtered(self):
        markup = "- Fix bug in parser\n- Improve startup time by 10%\n- abc123def456 checksum update"
        
        assert extract_bullets(markup, 8, 2500) == ["Fix bug in parser", "Improve startup time by 10%"]
    
    def test_result_is_stable_across_calls(self):
        markup = "- Fix bug in parser\n* Improve startup time by 10%\n• Reduce memory usage of cache"
        
        first = extract_bullets(markup, 8, 2500)
        assert first == extract_bullets(markup, 8, 2500)
        assert first == [
            "Fix bug in parser",
            "Improve startup time by 10%",
            "Reduce memory usage of cache",
        ]
    
    def test_links_and_emphasis_are_cleaned(self):
        markup = "- Add [support for YAML](https://example.com/pr/1) in the loader\n- **Breaking:** drop the legacy API"
        
        assert extract_bullets(markup, 8, 2500) == [
            "Add support for YAML in the loader",
            "Breaking: drop the legacy API",
        ]
    
    @pytest.mark.parametrize("noise", [
        "- Bump requests version to 2.31",
        "- Update dependency pytest to 8.0",
        "- Download release-linux.tar.gz from the assets",
        "- Installer is available as setup.exe for Windows",
        "- Merged commit 9f8e7d6c5b4a into main branch",
    ])
    def test_noise_is_filtered(self, noise):
        markup = f"{noise}\n- Fix crash on startup"
        
        assert extract_bullets(markup, 8, 2500) == ["Fix crash on startup"]
    
    def test_length_window(self):
        too_long = "Improve " * 30
        markup = f"- Fix typo\n- {too_long}\n- Fix crash on startup"
        
        assert extract_bullets(markup, 8, 2500) == ["Fix crash on startup"]
    
    def test_long_bullets_are_truncated(self):
        long_bullet = ("Improve " * 20).strip()
        
        bullets = extract_bullets(f"- {long_bullet}", 8, 2500)
        
        assert len(bullets) == 1
        assert bullets[0] == long_bullet[:140] + "…"
    
    def test_respects_max_bullets(self):
        markup = "\n".join(f"- Fix crash number {i} on startup" for i in range(10))
        
        bullets = extract_bullets(markup, 3, 2500)
        
        assert bullets == [f"Fix crash number {i} on startup" for i in range(3)]
    
    def test_empty_input(self):
        assert extract_bullets("", 8, 2500) == []
        assert extract_bullets(None, 8, 2500) == []
    
    def test_paragraph_fallback(self):
        markup = (
            "## What's new\n"
            "\n"
            "This release improves startup performance considerably.\n"
            "SEE THE MIGRATION GUIDE BELOW\n"
            "ok\n"
            "The CLI now supports **JSON** output.\n"
        )
        
        assert extract_bullets(markup, 8, 2500) == [
            "This release improves startup performance considerably.",
            "The CLI now supports JSON output.",
        ]
    
    def test_paragraph_fallback_caps_total_text(self):
        markup = "First paragraph line here.\nSecond paragraph line here."
        
        assert extract_bullets(markup, 8, 20) == ["First paragraph line…"]
    
    def test_paragraph_fallback_caps_each_line(self):
        markup = ("Prose " * 50).strip()
        
        paragraphs = extract_bullets(markup, 8, 2500)
        
        assert len(paragraphs) == 1
        assert len(paragraphs[0]) == 201
        assert paragraphs[0].endswith("…")


class TestHelpers:
    
    def test_mostly_uppercase(self):
        assert is_mostly_uppercase("BREAKING CHANGES")
        assert not is_mostly_uppercase("Breaking changes")
        assert not is_mostly_uppercase("AB")
        assert not is_mostly_uppercase("1234 5678")
    
    def test_is_noise_accepts_regular_text(self):
        assert not is_noise("Fix crash on startup")
