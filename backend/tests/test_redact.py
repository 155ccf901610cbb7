from tour_admin.main import redact_api_keys


def test_redact_key_query_param():
    event = {"url": "https://translation.googleapis.com/language/translate/v2?key=AIzaSECRET&q=hi"}
    out = redact_api_keys(None, None, event.copy())
    assert out["url"] == "https://translation.googleapis.com/language/translate/v2?key=REDACTED&q=hi"


def test_redact_bare_google_key():
    key = "AIza" + "x" * 35
    out = redact_api_keys(None, None, {"event": f"request failed for {key}"})
    assert key not in out["event"]
    assert "REDACTED" in out["event"]


def test_redact_nested():
    event = {"a": {"b": ["foo", "https://...&key=AIzaSECRET"]}}
    out = redact_api_keys(None, None, event.copy())
    assert out["a"]["b"] == ["foo", "https://...&key=REDACTED"]


def test_non_strings_untouched():
    out = redact_api_keys(None, None, {"status": 200, "ok": True})
    assert out == {"status": 200, "ok": True}
