from canvasplan.sanitizer import FALLBACK_PROMPT, sanitize_image_prompt, sanitize_prompt, sanitize_video_prompt

def test_clean_prompt_unchanged():
    prompt = "A barista pours latte art in a sunny cafe"
    assert sanitize_prompt(prompt) == prompt

def test_blocked_terms_removed():
    assert sanitize_prompt("A violent storm over a quiet harbour") == "A storm over a quiet harbour"

def test_risky_phrasing_rewritten():
    result = sanitize_prompt("Close-up of skin with lotion in soft light")
    assert result.startswith("professional product shot")

def test_fallback_when_nothing_left():
    assert sanitize_video_prompt("gore") == FALLBACK_PROMPT
    assert sanitize_video_prompt(None) == FALLBACK_PROMPT
    assert sanitize_image_prompt("nsfw") == "Professional product photograph"
